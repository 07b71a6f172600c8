from fastapi import Header

def get_current_user_id(x_user_id: str = Header(..., description="Authenticated user id, set by the auth gateway")) -> str:
    """
    Caller identity for budget scoping.

    Authentication happens upstream; this service trusts the user id the
    gateway forwards in the X-User-Id header.
    """
    return x_user_id
