"""Authentication and request metadata utilities"""
from functools import wraps

from flask import jsonify, request

from services.admin_service import is_admin


def get_admin_token():
    """Extract the admin session token from Authorization: Bearer or X-Admin-Token"""
    auth_header = request.headers.get('Authorization', '')
    if auth_header.lower().startswith('bearer '):
        return auth_header[7:].strip() or None
    return request.headers.get('X-Admin-Token') or request.headers.get('x-admin-token')


def admin_required(view):
    """Reject the request with 401 unless it carries a valid admin token"""
    @wraps(view)
    def wrapper(*args, **kwargs):
        if not is_admin(get_admin_token()):
            return jsonify({"error": "Admin authentication required"}), 401
        return view(*args, **kwargs)
    return wrapper


def get_client_ip():
    """First hop of X-Forwarded-For, then X-Real-IP, then the socket address"""
    forwarded = request.headers.get('X-Forwarded-For')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.headers.get('X-Real-IP') or request.remote_addr or 'unknown'
