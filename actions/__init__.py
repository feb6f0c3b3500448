"""actions/ -- Permission-checked server actions.

Importing this package registers every action with actions.base; the API
looks them up by name.

Layer rule: actions/ may import from auth/, audit/ and core/. It does NOT
import from api/ or maintenance/.
"""

from actions import entity_actions, log_actions, role_actions, user_actions  # noqa: F401
from actions.base import ActionContext, ActionResult, DEFAULT_SERVER_ERROR_MESSAGE, action_names, get_action

__all__ = ["ActionContext", "ActionResult", "DEFAULT_SERVER_ERROR_MESSAGE", "action_names", "get_action"]
