EXTRACTION_SYSTEM_PROMPT = "Extract financial data. Return only valid JSON."

EXTRACTION_PROMPT = """Extract Indian personal-finance facts from this message: "{text}"

CURRENCY CONVERSION:
Rs.40k = 40000, 5L = 500000, 1Cr = 10000000
8 LPA = monthly income 66666 (800000/12)

EXAMPLE:
"I'm 28, freelancer, earn 80k monthly, spend 40k, have 1L emergency fund, 5L term insurance"
-> {{"age": 28, "employmentType": "gig", "monthlyIncome": 80000, "monthlyExpenses": 40000,
    "assets": {{"emergencyFund": 100000}}, "insurance": {{"lifeInsuranceCover": 500000}}}}

Use null for anything the message does not state. Return JSON:
{{
  "age": number|null,
  "monthlyIncome": number|null,
  "monthlyExpenses": number|null,
  "employmentType": "salaried"|"gig"|"business"|"student"|"retired"|null,
  "dependents": number|null,
  "assets": {{"emergencyFund": number|null, "fixedDeposits": number|null,
             "mutualFunds": number|null, "stocks": number|null,
             "gold": number|null, "realEstate": number|null}},
  "liabilities": [{{"type": "home_loan"|"car_loan"|"personal_loan"|"credit_card"|"other",
                   "outstandingAmount": number, "interestRate": number, "monthlyEmi": number}}],
  "insurance": {{"lifeInsuranceCover": number|null, "healthInsuranceCover": number|null}},
  "taxDetails": {{"regime": "new"|"old"|null, "pan": string|null}}
}}"""

ROUTER_SYSTEM_PROMPT = "You route personal-finance questions to specialist agents. Return only JSON."

ROUTER_PROMPT = """Decide which specialist agents should handle this message: "{text}"

Known facts about the user: {context}

Available agents:
- tax_itr: income tax, ITR filing, regime comparison, deductions
- investment_planning: mutual funds, stocks, asset allocation, SIPs
- retirement_pension: NPS, retirement corpus, pension planning
- government_schemes: PPF, SSY, PMJJBY, subsidies, schemes
- transaction_tracking: logging income or expenses, checking balance
- analysis: overall financial health check
- general_qa: general financial questions and explanations

Return JSON:
{{"intent": "brief description", "agents": ["agent names"], "confidence": 0.0-1.0}}"""

ADVISOR_PROMPT = """Reference material:
{context}

User profile:
{profile}

User question: "{question}"

Answer as a {role}. Use Indian Rupee notation (Rs.), be specific and actionable,
and only rely on the reference material for rules and limits."""

TAX_ROLE = "tax advisor familiar with Indian income tax and ITR filing"
INVESTMENT_ROLE = "investment advisor for Indian retail investors"
RETIREMENT_ROLE = "retirement planner familiar with NPS, EPF and pension products"
SCHEMES_ROLE = "guide to Indian government savings and insurance schemes"

TRANSACTION_SYSTEM_PROMPT = "You are a transaction parser. Return only JSON."

TRANSACTION_PROMPT = """Decide if the user wants to LOG transactions or GET their balance.
All amounts are in INR. Today is {today}.

Return JSON:
{{
  "intent": "log_transaction"|"get_balance",
  "transactions": [{{"type": "income"|"expense"|"savings", "amount": number,
                    "category": string, "frequency": "monthly"|"yearly"|"one-time",
                    "date": "YYYY-MM-DD", "description": string}}]
}}

User input: "{text}"
"""

GOAL_SYSTEM_PROMPT = "You are a financial goal parser. Return only JSON."

GOAL_PROMPT = """Extract the financial goal the user describes.

Return JSON:
{{
  "goal": {{"name": string, "targetAmount": number,
            "timeHorizonMonths": number (estimate if implicit, e.g. "next year" = 12),
            "priority": "high"|"medium"|"low"}},
  "missingFields": [string]
}}

User input: "{text}"
"""

SUMMARY_SYSTEM_PROMPT = "You are a professional Indian financial advisor."

SUMMARY_PROMPT = """Write a 2-3 sentence executive summary of this person's financial health.
Do not introduce any number that is not listed below.

User message: "{text}"

Facts:
{facts}"""
