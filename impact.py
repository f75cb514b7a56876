import math
import re

AMOUNT_RE = re.compile(r"(\d+(\.\d+)?)")
CO2_PER_KG = 0.5


def round_one(value):
    """Round half up to one decimal place."""
    return math.floor(value * 10 + 0.5) / 10


def leading_amount(amount):
    match = AMOUNT_RE.search(amount or "")
    return float(match.group(0)) if match else 0.0


def compute_impact(reports, rewards, tasks):
    waste_collected = sum(leading_amount(task.get("amount")) for task in tasks)
    return {
        "waste_collected": round_one(waste_collected),
        "reports_submitted": len(reports),
        "tokens_earned": sum(reward.get("points") or 0 for reward in rewards),
        "co2_offset": round_one(waste_collected * CO2_PER_KG),
    }
