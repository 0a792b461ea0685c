CURRENCY_SYMBOLS = {"gbp": "£", "usd": "$", "eur": "€"}


def format_money(amount_cents: int, currency: str = "gbp") -> str:
    symbol = CURRENCY_SYMBOLS.get((currency or "").lower())
    amount = f"{(amount_cents or 0) / 100:.2f}"
    if symbol:
        return f"{symbol}{amount}"
    return f"{amount} {(currency or '').upper()}".strip()
