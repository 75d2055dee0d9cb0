"""Intent and UI action vocabulary shared by nodes and routing."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class AgentIntent(str, Enum):
    """What the user wants to accomplish."""

    # Calendar
    READ_CALENDAR = "READ_CALENDAR"
    CREATE_EVENT = "CREATE_EVENT"
    UPDATE_EVENT = "UPDATE_EVENT"
    DELETE_EVENT = "DELETE_EVENT"

    # Alarms
    CREATE_ALARM = "CREATE_ALARM"
    LIST_ALARMS = "LIST_ALARMS"
    DELETE_ALARM = "DELETE_ALARM"

    # Phone
    CALL_CONTACT = "CALL_CONTACT"
    SEND_SMS = "SEND_SMS"

    # UI navigation
    CLICK_ELEMENT = "CLICK_ELEMENT"
    SCROLL_SCREEN = "SCROLL_SCREEN"
    TYPE_TEXT = "TYPE_TEXT"
    GO_BACK = "GO_BACK"
    GO_HOME = "GO_HOME"

    # Selected-content actions
    SEARCH_SELECTED = "SEARCH_SELECTED"
    TRANSLATE_SELECTED = "TRANSLATE_SELECTED"
    COPY_SELECTED = "COPY_SELECTED"
    SAVE_SELECTED = "SAVE_SELECTED"
    SHARE_SELECTED = "SHARE_SELECTED"
    EXTRACT_DATA_FROM_SELECTION = "EXTRACT_DATA_FROM_SELECTION"

    # General
    SEARCH = "SEARCH"
    ANSWER_QUESTION = "ANSWER_QUESTION"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: object) -> "AgentIntent":
        """Map free-form model output to an intent, defaulting to UNKNOWN."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return cls.UNKNOWN


CAPABILITY_INTENTS = frozenset(
    {
        AgentIntent.READ_CALENDAR,
        AgentIntent.CREATE_EVENT,
        AgentIntent.UPDATE_EVENT,
        AgentIntent.DELETE_EVENT,
        AgentIntent.CREATE_ALARM,
        AgentIntent.LIST_ALARMS,
        AgentIntent.DELETE_ALARM,
        AgentIntent.CALL_CONTACT,
        AgentIntent.SEND_SMS,
    }
)

UI_INTENTS = frozenset(
    {
        AgentIntent.CLICK_ELEMENT,
        AgentIntent.SCROLL_SCREEN,
        AgentIntent.TYPE_TEXT,
        AgentIntent.GO_BACK,
        AgentIntent.GO_HOME,
    }
)

SELECTION_INTENTS = frozenset(
    {
        AgentIntent.SEARCH_SELECTED,
        AgentIntent.TRANSLATE_SELECTED,
        AgentIntent.COPY_SELECTED,
        AgentIntent.SAVE_SELECTED,
        AgentIntent.SHARE_SELECTED,
        AgentIntent.EXTRACT_DATA_FROM_SELECTION,
    }
)

MULTI_STEP_INTENTS = frozenset(
    {
        AgentIntent.CREATE_EVENT,
        AgentIntent.SEND_SMS,
        AgentIntent.CALL_CONTACT,
    }
)


class ActionType(str, Enum):
    CLICK = "CLICK"
    SCROLL = "SCROLL"
    TYPE = "TYPE"
    HOME = "HOME"
    BACK = "BACK"
    WAIT = "WAIT"
    NONE = "NONE"
    TOOL_CALL = "TOOL_CALL"


class AgentAction(BaseModel):
    """UI automation action produced at the end of a turn."""

    model_config = ConfigDict(frozen=True)

    action: ActionType
    target: Optional[str] = None
    text: Optional[str] = None
    direction: Optional[str] = None
    reasoning: Optional[str] = None
