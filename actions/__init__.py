from __future__ import annotations

from typing import Any, Callable

from actions.audit import audit_logs_list
from actions.auth_actions import change_password, get_me, login, logout, me_update, page_access_check
from actions.candidates import candidate_apply, candidate_get, candidates_list
from actions.decisions import decision_create, decisions_list
from actions.employees import (
    employee_create_from_candidate,
    employee_get,
    employee_profile_get,
    employee_profile_update,
    employees_list,
)
from actions.interviews import (
    interview_session_create,
    interview_session_status_set,
    interview_sessions_list,
    interview_update,
    interviews_list,
    my_interviews_list,
)
from actions.pipeline import candidate_approve, candidate_bulk_decide, candidate_reject
from actions.positions import position_create, position_update, positions_list, positions_open_list
from actions.stats import dashboard_stats
from actions.users import (
    interviewers_list,
    user_create,
    user_delete,
    user_get,
    user_password_reset,
    user_status_toggle,
    user_update,
    username_suggest,
    users_list,
)
from utils import ApiError, AuthContext


Handler = Callable[[dict, "AuthContext | None", Any, Any], Any]

ACTION_HANDLERS: dict[str, Handler] = {
    "LOGIN": login,
    "GET_ME": get_me,
    "LOGOUT": logout,
    "ME_UPDATE": me_update,
    "CHANGE_PASSWORD": change_password,
    "PAGE_ACCESS_CHECK": page_access_check,
    "USERS_LIST": users_list,
    "INTERVIEWERS_LIST": interviewers_list,
    "USER_GET": user_get,
    "USER_CREATE": user_create,
    "USER_UPDATE": user_update,
    "USER_STATUS_TOGGLE": user_status_toggle,
    "USER_DELETE": user_delete,
    "USER_PASSWORD_RESET": user_password_reset,
    "USERNAME_SUGGEST": username_suggest,
    "POSITIONS_LIST": positions_list,
    "POSITIONS_OPEN_LIST": positions_open_list,
    "POSITION_CREATE": position_create,
    "POSITION_UPDATE": position_update,
    "CANDIDATE_APPLY": candidate_apply,
    "CANDIDATES_LIST": candidates_list,
    "CANDIDATE_GET": candidate_get,
    "CANDIDATE_APPROVE": candidate_approve,
    "CANDIDATE_REJECT": candidate_reject,
    "CANDIDATE_BULK_DECIDE": candidate_bulk_decide,
    "INTERVIEW_SESSION_CREATE": interview_session_create,
    "INTERVIEW_SESSIONS_LIST": interview_sessions_list,
    "INTERVIEW_SESSION_STATUS_SET": interview_session_status_set,
    "INTERVIEWS_LIST": interviews_list,
    "MY_INTERVIEWS_LIST": my_interviews_list,
    "INTERVIEW_UPDATE": interview_update,
    "DECISION_CREATE": decision_create,
    "DECISIONS_LIST": decisions_list,
    "EMPLOYEE_CREATE_FROM_CANDIDATE": employee_create_from_candidate,
    "EMPLOYEES_LIST": employees_list,
    "EMPLOYEE_GET": employee_get,
    "EMPLOYEE_PROFILE_GET": employee_profile_get,
    "EMPLOYEE_PROFILE_UPDATE": employee_profile_update,
    "AUDIT_LOGS_LIST": audit_logs_list,
    "DASHBOARD_STATS": dashboard_stats,
}


def dispatch(action_u: str, data: Any, auth_ctx: AuthContext | None, db, cfg) -> Any:
    handler = ACTION_HANDLERS.get(str(action_u or "").upper().strip())
    if handler is None:
        raise ApiError("BAD_REQUEST", f"Unknown action: {action_u}")
    if data is not None and not isinstance(data, dict):
        raise ApiError("BAD_REQUEST", "data must be a JSON object")
    return handler(data or {}, auth_ctx, db, cfg)
