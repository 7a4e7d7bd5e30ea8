def rupees(amount: float) -> str:
    """Format ``amount`` with Indian digit grouping, e.g. ``Rs.1,20,000``."""
    sign = "-" if amount < 0 else ""
    digits = str(int(round(abs(amount))))
    if len(digits) > 3:
        head, tail = digits[:-3], digits[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        digits = ",".join(groups + [tail])
    return f"{sign}Rs.{digits}"


def percent(value: float) -> str:
    return f"{value:.1f}%"
