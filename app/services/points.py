import math
from decimal import Decimal

# points per dollar spent, before promotions
BASE_EARN_RATE = 4


def calc_points(spent, rate=BASE_EARN_RATE) -> int:
    """ceil(spent * rate), computed in decimal so 20.00 * 4 is exactly 80."""
    if spent is None or rate is None:
        return 0
    return int(math.ceil(Decimal(str(spent)) * Decimal(str(rate))))
