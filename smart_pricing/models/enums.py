import enum

class PricingState(str, enum.Enum):
    INCREASING = "increasing"
    WAITING_AFTER_REVERT = "waiting_after_revert"
    AT_MAX_CAP = "at_max_cap"

class PriceChangeAction(str, enum.Enum):
    INCREASE = "increase"
    REVERT = "revert"

class DecisionAction(str, enum.Enum):
    HOLD = "hold"
    INCREASE = "increase"
    REVERT = "revert"

class ResumeStrategy(str, enum.Enum):
    BASE = "base"
    LAST = "last"

class UndoAction(str, enum.Enum):
    GLOBAL_ON = "global-on"
    GLOBAL_OFF = "global-off"
    INDIVIDUAL_ON = "individual-on"
    INDIVIDUAL_OFF = "individual-off"

class RunStatus(str, enum.Enum):
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    SKIPPED = "skipped"
    FAILED = "failed"
