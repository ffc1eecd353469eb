"""Number formatting shared by prompts and notes."""


def format_money(value: float) -> str:
    """Dollar amount without trailing zeros: 30 -> $30, 12.5 -> $12.5."""
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"${text}"
