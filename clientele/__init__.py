"""
Django Clientele - customer identity resolution and tagging.

Usage:
    from clientele import SyncCoordinator, OrderRecord

    coordinator = SyncCoordinator()
    stats = coordinator.process([
        OrderRecord(ref="1001", shop_id=1, email="jane@example.com"),
    ])
    coordinator.recompute_all()

    from clientele import ClienteleError
"""


def __getattr__(name):
    if name == "SyncCoordinator":
        from clientele.services.sync import SyncCoordinator

        return SyncCoordinator
    if name == "SyncStats":
        from clientele.services.sync import SyncStats

        return SyncStats
    if name == "RuleEngine":
        from clientele.services.rule_engine import RuleEngine

        return RuleEngine
    if name == "GroupClassifier":
        from clientele.services.classification import GroupClassifier

        return GroupClassifier
    if name == "OrderRecord":
        from clientele.protocols import OrderRecord

        return OrderRecord
    if name == "ClienteleError":
        from clientele.exceptions import ClienteleError

        return ClienteleError
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "SyncCoordinator",
    "SyncStats",
    "RuleEngine",
    "GroupClassifier",
    "OrderRecord",
    "ClienteleError",
]
__version__ = "0.1.0"
