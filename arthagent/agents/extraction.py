"""Turn free text into validated profile facts."""

from __future__ import annotations

import copy
import logging
import re
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    NonNegativeFloat,
    ValidationError,
    model_validator,
)

from ..errors import ExtractionError
from ..models import EmploymentType, Liability, ProfilePatch, UserPatch
from .llm import LanguageModel, complete_json
from .prompts import EXTRACTION_PROMPT, EXTRACTION_SYSTEM_PROMPT

logger = logging.getLogger(__name__)

_MULTIPLIERS = {
    "k": 1_000,
    "thousand": 1_000,
    "l": 100_000,
    "lakh": 100_000,
    "lakhs": 100_000,
    "lac": 100_000,
    "cr": 10_000_000,
    "crore": 10_000_000,
    "crores": 10_000_000,
}
_AMOUNT = re.compile(r"^(-?\d+(?:\.\d+)?)\s*([a-z]*)$")
_CURRENCY = re.compile(r"^\s*(?:rs\.?|inr|₹)\s*")


def parse_amount(value: Any) -> Any:
    """Accept ``"40k"``, ``"Rs. 5L"``, ``"1,20,000"`` as well as numbers."""
    if not isinstance(value, str):
        return value
    text = _CURRENCY.sub("", value.lower().replace(",", "")).strip()
    if not text:
        return None
    match = _AMOUNT.match(text)
    if not match:
        raise ValueError(f"Unrecognised amount: {value!r}")
    number, suffix = match.groups()
    if suffix and suffix not in _MULTIPLIERS:
        raise ValueError(f"Unrecognised amount suffix: {value!r}")
    return float(number) * _MULTIPLIERS.get(suffix, 1)


_EMPLOYMENT_ALIASES = {
    "freelancer": EmploymentType.GIG,
    "freelance": EmploymentType.GIG,
    "gig worker": EmploymentType.GIG,
    "self-employed": EmploymentType.BUSINESS,
    "self employed": EmploymentType.BUSINESS,
    "business owner": EmploymentType.BUSINESS,
    "employee": EmploymentType.SALARIED,
    "salaried employee": EmploymentType.SALARIED,
}


def parse_employment(value: Any) -> Any:
    if isinstance(value, str):
        key = value.strip().lower()
        return _EMPLOYMENT_ALIASES.get(key, key)
    return value


_LIABILITY_TYPES = {"home_loan", "car_loan", "personal_loan", "credit_card", "other"}


def parse_liability_type(value: Any) -> Any:
    if value is None:
        return "other"
    key = str(value).strip().lower().replace(" ", "_").replace("-", "_")
    return key if key in _LIABILITY_TYPES else "other"


Amount = Annotated[Optional[NonNegativeFloat], BeforeValidator(parse_amount)]


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ExtractedAssets(_CamelModel):
    emergency_fund: Amount = Field(default=None, alias="emergencyFund")
    fixed_deposits: Amount = Field(default=None, alias="fixedDeposits")
    mutual_funds: Amount = Field(default=None, alias="mutualFunds")
    stocks: Amount = None
    gold: Amount = None
    real_estate: Amount = Field(default=None, alias="realEstate")


class ExtractedLiability(_CamelModel):
    type: Annotated[str, BeforeValidator(parse_liability_type)] = "other"
    outstanding_amount: Annotated[float, BeforeValidator(parse_amount)] = Field(
        default=0.0, ge=0, alias="outstandingAmount"
    )
    interest_rate: float = Field(default=0.0, ge=0, le=100, alias="interestRate")
    monthly_emi: Annotated[float, BeforeValidator(parse_amount)] = Field(
        default=0.0, ge=0, alias="monthlyEmi"
    )


class ExtractedInsurance(_CamelModel):
    life_insurance_cover: Amount = Field(default=None, alias="lifeInsuranceCover")
    health_insurance_cover: Amount = Field(default=None, alias="healthInsuranceCover")
    monthly_premium: Amount = Field(default=None, alias="monthlyPremium")


class ExtractedTaxDetails(_CamelModel):
    regime: Optional[Literal["new", "old"]] = None
    pan: Optional[str] = Field(default=None, pattern=r"^[A-Z]{5}[0-9]{4}[A-Z]$")


class ProfileExtraction(_CamelModel):
    """Facts stated in one message; ``None`` means "not mentioned"."""

    age: Optional[int] = Field(default=None, ge=0, le=120)
    monthly_income: Amount = Field(default=None, alias="monthlyIncome")
    monthly_expenses: Amount = Field(default=None, alias="monthlyExpenses")
    employment_type: Annotated[
        Optional[EmploymentType], BeforeValidator(parse_employment)
    ] = Field(default=None, alias="employmentType")
    dependents: Optional[int] = Field(default=None, ge=0, le=20)
    assets: ExtractedAssets = Field(default_factory=ExtractedAssets)
    liabilities: List[ExtractedLiability] = Field(default_factory=list)
    insurance: ExtractedInsurance = Field(default_factory=ExtractedInsurance)
    tax_details: ExtractedTaxDetails = Field(
        default_factory=ExtractedTaxDetails, alias="taxDetails"
    )

    @model_validator(mode="before")
    @classmethod
    def _null_sections(cls, data: Any) -> Any:
        if isinstance(data, dict):
            sections = ("assets", "liabilities", "insurance", "taxDetails", "tax_details")
            data = {k: v for k, v in data.items() if not (k in sections and v is None)}
        return data

    def to_patches(self) -> tuple[ProfilePatch, UserPatch]:
        """Split into the profile and user patches the store applies."""
        profile = ProfilePatch(
            employment_type=self.employment_type,
            monthly_burn_rate=self.monthly_expenses or None,
            monthly_income=self.monthly_income or None,
            dependents=self.dependents,
            emergency_fund=self.assets.emergency_fund,
            fixed_deposits=self.assets.fixed_deposits,
            mutual_funds=self.assets.mutual_funds,
            stocks=self.assets.stocks,
            gold=self.assets.gold,
            real_estate=self.assets.real_estate,
            life_insurance_cover=self.insurance.life_insurance_cover,
            health_insurance_cover=self.insurance.health_insurance_cover,
            monthly_premium=self.insurance.monthly_premium,
            tax_regime=self.tax_details.regime,
            pan=self.tax_details.pan,
            liabilities=[
                Liability(
                    type=item.type,
                    outstanding_amount=item.outstanding_amount,
                    interest_rate=item.interest_rate,
                    monthly_emi=item.monthly_emi,
                )
                for item in self.liabilities
                if item.outstanding_amount or item.monthly_emi
            ],
        )
        return profile, UserPatch(age=self.age or None)


class ValidExtraction(BaseModel):
    status: Literal["valid"] = "valid"
    data: ProfileExtraction = Field(default_factory=ProfileExtraction)
    dropped: List[str] = Field(default_factory=list)


class RejectedExtraction(BaseModel):
    status: Literal["rejected"] = "rejected"
    reason: str


ExtractionResult = Annotated[
    Union[ValidExtraction, RejectedExtraction], Field(discriminator="status")
]


def _delete_path(data: Any, path: tuple) -> bool:
    target = data
    for key in path[:-1]:
        try:
            target = target[key]
        except (KeyError, IndexError, TypeError):
            return False
    try:
        del target[path[-1]]
    except (KeyError, IndexError, TypeError):
        return False
    return True


def _error_path(loc: tuple) -> tuple:
    """Truncate ``loc`` so list items are dropped whole."""
    for i, part in enumerate(loc):
        if isinstance(part, int):
            return tuple(loc[: i + 1])
    return loc


def validate_extraction(raw: Any) -> ValidExtraction | RejectedExtraction:
    """Validate model output, dropping individual invalid fields."""
    if not isinstance(raw, dict):
        return RejectedExtraction(reason="model output is not a JSON object")
    try:
        return ValidExtraction(data=ProfileExtraction.model_validate(raw))
    except ValidationError as exc:
        errors = exc.errors()

    cleaned = copy.deepcopy(raw)
    paths = sorted({_error_path(tuple(err["loc"])) for err in errors}, reverse=True)
    dropped = []
    for path in paths:
        if path and _delete_path(cleaned, path):
            dropped.append(".".join(str(p) for p in path))
    try:
        data = ProfileExtraction.model_validate(cleaned)
    except ValidationError as exc:
        return RejectedExtraction(reason=f"unsalvageable extraction: {exc.error_count()} error(s)")
    logger.info(f"Dropped invalid extracted fields: {dropped}")
    return ValidExtraction(data=data, dropped=sorted(dropped))


async def extract_profile(llm: LanguageModel, text: str) -> ValidExtraction | RejectedExtraction:
    """Ask the model for profile facts in ``text`` and validate them."""
    raw = await complete_json(
        llm, EXTRACTION_PROMPT.format(text=text), system_prompt=EXTRACTION_SYSTEM_PROMPT
    )
    if raw is None:
        return RejectedExtraction(reason="model output is not JSON")
    return validate_extraction(raw)


def require_valid(result: ValidExtraction | RejectedExtraction) -> ValidExtraction:
    """Unwrap ``result`` or raise :class:`ExtractionError`."""
    if isinstance(result, RejectedExtraction):
        raise ExtractionError(result.reason)
    return result
