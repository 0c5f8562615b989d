"""Clientele exceptions."""


class ClienteleError(Exception):
    """
    Structured exception for identity and tagging operations.

    Usage:
        try:
            coordinator.sync_order(order)
        except ClienteleError as e:
            if e.code == "LOCK_CONTENTION":
                schedule_retry()
    """

    _default_messages = {
        "CUSTOMER_NOT_FOUND": "Customer not found",
        "LOCK_CONTENTION": "Could not lock customer identity",
        "INVALID_RULE": "Invalid tag rule",
        "DUPLICATE_TAG_KEY": "Tag rule with this key already exists",
        "RULE_NOT_FOUND": "Tag rule not found",
    }

    def __init__(self, code: str, message: str | None = None, **data):
        self.code = code
        self.message = message or self._default_messages.get(code, code)
        self.data = data
        super().__init__(f"[{code}] {self.message}")

    @property
    def is_transient(self) -> bool:
        return self.code == "LOCK_CONTENTION"

    def as_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "data": self.data}
