"""
Badge shown next to each plan on the plans page. Pure presentation logic.
"""

PREMIUM = 'premium'
POPULAR = 'popular'
BASIC = 'basic'

PREMIUM_KEYWORDS = ('premium',)
POPULAR_KEYWORDS = ('standard', 'estándar', 'estandar')


def classify_tier(plan, plans):
    """
    Label `plan` by where its price sits among `plans`.

    Top third of the price ranking is premium, middle third popular, the rest
    basic. A name containing "premium" or "standard" wins over the price.
    """
    name = (plan.name or '').lower()
    if any(word in name for word in PREMIUM_KEYWORDS):
        return PREMIUM
    if any(word in name for word in POPULAR_KEYWORDS):
        return POPULAR

    prices = [p.price for p in plans]
    if plan not in plans:
        prices.append(plan.price)
    if len(prices) < 2:
        return BASIC

    cheaper = sum(1 for price in prices if price < plan.price)
    percentile = cheaper / (len(prices) - 1)
    if percentile >= 2 / 3:
        return PREMIUM
    if percentile >= 1 / 3:
        return POPULAR
    return BASIC
