class DiscountEngineError(Exception):
    """Base class for everything the discount engines raise."""


class ConfigurationError(DiscountEngineError):
    """A rule is malformed (missing value, unknown discount or offer type)."""

    def __init__(self, message: str, rule_id=None):
        super().__init__(message)
        self.rule_id = rule_id


class ConditionEvaluationError(DiscountEngineError):
    pass


class DataAccessError(DiscountEngineError):
    """The rule store could not be read or written."""


class GiftLineLockedError(DiscountEngineError):
    """Raised when something other than reconciliation tries to change a gift line."""

    def __init__(self, line_key: str):
        super().__init__(f"Gift line {line_key} is managed automatically and cannot be changed")
        self.line_key = line_key
