"""blacklist-stats — Slice call-center blacklist activity into summary reports."""

__version__ = "0.1.0"

UNKNOWN_LABEL = "未知"
NOT_TRIGGERED_GROUP = "未触发黑名单部分"

DIMENSION_COLUMNS: list[str] = ["dt", "account", "province", "group"]
BASE_COUNTER_COLUMNS: list[str] = [
    "total_outbound_count",
    "black_outbound_count",
    "total_pickup_count",
    "black_pickup_count",
    "total_pay_count",
    "black_pay_count",
]
EXTENDED_COUNTER_COLUMNS: list[str] = ["total_complain_count", "black_complain_count"]
COUNTER_COLUMNS: list[str] = BASE_COUNTER_COLUMNS + EXTENDED_COUNTER_COLUMNS

REQUIRED_COLUMNS: list[str] = DIMENSION_COLUMNS + BASE_COUNTER_COLUMNS
