"""Flask application with route handlers"""
from flask import Flask, jsonify, request
from flask_cors import CORS
import os
import traceback

from config.settings import CORS_ORIGINS
from utils.auth import admin_required, get_client_ip
from utils.errors import ValidationError, WaitlistError
from utils.validation import sanitize_string, validate_integer
from utils.logger import log_error, log_info
from utils.rate_limit import init_rate_limiter, RATE_LIMITS
from services import waitlist_service, referral_service, payment_service, admin_service

app = Flask(__name__)
CORS(app, resources={
    r"/api/*": {
        "origins": CORS_ORIGINS,
        "methods": ["GET", "POST", "PATCH", "OPTIONS"],
        "allow_headers": ["Content-Type", "Authorization", "X-Admin-Token"],
        "supports_credentials": True
    }
})

# Initialize rate limiter
limiter = init_rate_limiter(app)


def error_response(error: WaitlistError):
    if error.status_code >= 500:
        log_error(f"{request.method} {request.path} failed", error=error)
    return jsonify(error.to_dict()), error.status_code


@app.route('/')
def home():
    return jsonify({
        "message": "Membership Waitlist API",
        "status": "running",
        "version": "1.0.0"
    })


@app.route('/health')
@limiter.exempt
def health_check():
    return jsonify({
        "status": "healthy",
        "message": "API is running successfully"
    })


# ==================== Signup ====================

@app.route('/api/signup', methods=['POST'])
@limiter.limit(RATE_LIMITS['strict'])
def signup():
    """Create a waitlist user from the completed form"""
    try:
        data = request.get_json(silent=True)
        if not data:
            return jsonify({"error": "No data provided"}), 400
        if not isinstance(data, dict):
            raise ValidationError('Request body must be a JSON object')

        tracking = {
            'ip_address': get_client_ip(),
            'user_agent': sanitize_string(
                data.get('user_agent') or request.headers.get('User-Agent'), max_length=500
            ),
            'utm_source': sanitize_string(
                data.get('utm_source') or request.args.get('utm_source'), max_length=200
            ),
        }

        result = waitlist_service.join_waitlist(data, tracking=tracking)
        return jsonify({
            "success": True,
            "data": result.to_dict(),
            "message": "Account created successfully"
        }), 201
    except WaitlistError as e:
        return error_response(e)
    except Exception as e:
        error_trace = traceback.format_exc()
        log_error("Error in signup", traceback_str=error_trace)
        return jsonify({"error": "An unexpected error occurred"}), 500


# ==================== Referrals ====================

@app.route('/api/referral', methods=['GET'])
@limiter.limit(RATE_LIMITS['generous'])
def lookup_referral():
    """Check a referral code and return display info about its owner"""
    try:
        code = sanitize_string(request.args.get('code', ''), max_length=64)
        result = referral_service.lookup_referral(code)
        return jsonify(result), 200
    except WaitlistError as e:
        body, status = error_response(e)
        if status == 404:
            return jsonify({"valid": False, "error": e.message}), 404
        return body, status
    except Exception as e:
        log_error("Error looking up referral code", error=e)
        return jsonify({"error": "An unexpected error occurred"}), 500


@app.route('/api/referral/stats', methods=['POST'])
@limiter.limit(RATE_LIMITS['standard'])
def get_referral_stats():
    """Waitlist standing and referral totals for a user"""
    try:
        data = request.get_json(silent=True) or {}
        stats = referral_service.get_referral_stats(sanitize_string(data.get('user_id'), max_length=64))
        return jsonify({"success": True, "stats": stats}), 200
    except WaitlistError as e:
        return error_response(e)
    except Exception as e:
        log_error("Error fetching referral stats", error=e)
        return jsonify({"error": "An unexpected error occurred"}), 500


# ==================== Payments ====================

@app.route('/api/payments/setup-intent', methods=['POST'])
@limiter.limit(RATE_LIMITS['strict'])
def create_setup_intent():
    """Issue a fresh setup intent for an existing user"""
    try:
        data = request.get_json(silent=True) or {}
        result = payment_service.create_setup_intent_for_user(sanitize_string(data.get('user_id'), max_length=64))
        return jsonify({
            "success": True,
            "data": result,
            "message": "Setup intent created successfully"
        }), 200
    except WaitlistError as e:
        return error_response(e)
    except Exception as e:
        error_trace = traceback.format_exc()
        log_error("Error creating setup intent", traceback_str=error_trace)
        return jsonify({"error": "An unexpected error occurred"}), 500


@app.route('/api/payments/confirm', methods=['POST'])
@limiter.limit(RATE_LIMITS['strict'])
def confirm_payment():
    """Record the payment method once the client confirmed the setup intent"""
    try:
        data = request.get_json(silent=True) or {}
        result = payment_service.confirm_setup(
            sanitize_string(data.get('user_id'), max_length=64),
            sanitize_string(data.get('setup_intent_id'), max_length=255),
        )
        return jsonify({
            "success": True,
            "data": result,
            "message": "Payment method saved successfully"
        }), 200
    except WaitlistError as e:
        return error_response(e)
    except Exception as e:
        error_trace = traceback.format_exc()
        log_error("Error confirming payment", traceback_str=error_trace)
        return jsonify({"error": "An unexpected error occurred"}), 500


# ==================== Admin ====================

@app.route('/api/admin/users', methods=['GET'])
@admin_required
def admin_list_users():
    """List waitlist users in position order"""
    try:
        result = admin_service.list_users(
            search=sanitize_string(request.args.get('search', ''), max_length=200) or None,
            limit=validate_integer(request.args.get('limit', 50), min_value=1, max_value=500) or 50,
            offset=validate_integer(request.args.get('offset', 0), min_value=0) or 0,
        )
        return jsonify(result), 200
    except WaitlistError as e:
        return error_response(e)
    except Exception as e:
        log_error("Error listing users", error=e)
        return jsonify({"error": "Failed to fetch users"}), 500


@app.route('/api/admin/users/<user_id>', methods=['GET'])
@admin_required
def admin_get_user(user_id):
    try:
        return jsonify(admin_service.get_user(user_id)), 200
    except WaitlistError as e:
        return error_response(e)
    except Exception as e:
        log_error("Error fetching user", error=e)
        return jsonify({"error": "Failed to fetch user"}), 500


@app.route('/api/admin/users/<user_id>', methods=['PATCH'])
@admin_required
@limiter.limit(RATE_LIMITS['moderate'])
def admin_update_user(user_id):
    try:
        data = request.get_json(silent=True)
        user = admin_service.update_user(user_id, data)
        return jsonify(user), 200
    except WaitlistError as e:
        return error_response(e)
    except Exception as e:
        log_error("Error updating user", error=e)
        return jsonify({"error": "Failed to update user"}), 500


@app.route('/api/admin/stats', methods=['GET'])
@admin_required
def admin_stats():
    try:
        return jsonify(admin_service.get_stats()), 200
    except WaitlistError as e:
        return error_response(e)
    except Exception as e:
        log_error("Error fetching dashboard statistics", error=e)
        return jsonify({"error": "Failed to fetch dashboard statistics"}), 500


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    debug = os.environ.get('FLASK_ENV') == 'development'
    log_info(f"Starting waitlist API on port {port}")
    app.run(host='0.0.0.0', port=port, debug=debug)
