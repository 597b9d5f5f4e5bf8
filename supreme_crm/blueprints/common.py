"""Request parsing helpers shared by the API blueprints."""

from flask import request

MAX_PER_PAGE = 200


def json_body():
    """The JSON body as a dict. Missing or non-object bodies raise ValueError."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON object.")
    return data


def int_arg(name, default):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be a whole number.")


def bool_arg(name):
    """True / False for "true"/"false" style values, None when absent."""
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    return raw.strip().lower() in ("1", "true", "yes", "on")


def page_args():
    page = int_arg("page", 1)
    per_page = int_arg("limit", 50)
    if page < 1:
        raise ValueError("page must be 1 or greater.")
    if not 1 <= per_page <= MAX_PER_PAGE:
        raise ValueError(f"limit must be between 1 and {MAX_PER_PAGE}.")
    return page, per_page


def pagination(total, page, per_page):
    return {
        "total": total,
        "page": page,
        "limit": per_page,
        "total_pages": (total + per_page - 1) // per_page,
    }
