"""Transactional email via AWS SES"""
import os
from html import escape
from typing import Any, Dict, Optional, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from config import settings
from services import data_store
from services.referral_service import build_referral_link
from utils.errors import UpstreamUnavailable, ValidationError
from utils.logger import log_info, log_warning


def _render_welcome(data: Dict[str, Any]) -> Tuple[str, str, str]:
    first_name = data['first_name']
    position = data['waitlist_position']
    referral_code = data['referral_code']
    referral_url = data.get('referral_url') or build_referral_link(referral_code)

    subject = f"Welcome to the waitlist! You're #{position}"
    html = f"""
    <h2>Hi {escape(first_name)},</h2>
    <p>Welcome to the waitlist! You're <strong>#{position}</strong> on the list.</p>
    <p>Your referral code: <strong>{escape(referral_code)}</strong></p>
    <p>
        <a href="{escape(referral_url)}">Share your link</a>
        and let friends know they can join with your code.
    </p>
    <p>No charge today. Your card is only charged once you're accepted.</p>
    """
    text = (
        f"Hi {first_name},\n\n"
        f"Welcome to the waitlist! You're #{position} on the list.\n\n"
        f"Your referral code: {referral_code}\n"
        f"Share your link: {referral_url}\n\n"
        "No charge today. Your card is only charged once you're accepted.\n"
    )
    return subject, html, text


def _render_referral_success(data: Dict[str, Any]) -> Tuple[str, str, str]:
    first_name = data['first_name']
    friend_name = data['friend_name']
    referral_code = data['referral_code']
    referral_url = data.get('referral_url') or build_referral_link(referral_code)

    subject = f"{friend_name} joined using your referral code!"
    html = f"""
    <h2>Your referral worked!</h2>
    <p>Hi {escape(first_name)},</p>
    <p><strong>{escape(friend_name)}</strong> just joined the waitlist using your referral code.</p>
    <p>Your referral code: <strong>{escape(referral_code)}</strong></p>
    <p><a href="{escape(referral_url)}">Keep sharing</a></p>
    """
    text = (
        f"Hi {first_name},\n\n"
        f"Great news! {friend_name} just joined the waitlist using your referral code.\n\n"
        f"Your referral code: {referral_code}\n"
        f"Keep sharing: {referral_url}\n"
    )
    return subject, html, text


TEMPLATES = {
    'welcome': _render_welcome,
    'referral_success': _render_referral_success,
}


class EmailDispatcher:
    """Render a named template and send it through SES"""

    def __init__(self, ses_client=None, store=None):
        self._ses_client = ses_client
        self._store = store
        self.from_email = settings.SES_FROM_EMAIL
        self.from_name = settings.SES_FROM_NAME

    @property
    def ses_client(self):
        if self._ses_client is None:
            aws_access_key = os.environ.get('AWS_ACCESS_KEY_ID')
            aws_secret_key = os.environ.get('AWS_SECRET_ACCESS_KEY')
            if aws_access_key and aws_secret_key:
                self._ses_client = boto3.client(
                    'ses',
                    region_name=settings.AWS_REGION,
                    aws_access_key_id=aws_access_key,
                    aws_secret_access_key=aws_secret_key
                )
            else:
                # Fallback to IAM role/default credentials
                self._ses_client = boto3.client('ses', region_name=settings.AWS_REGION)
        return self._ses_client

    @property
    def store(self):
        return self._store or data_store.get_data_store()

    def render(self, template_name: str, template_data: Dict[str, Any]) -> Tuple[str, str, str]:
        renderer = TEMPLATES.get(template_name)
        if renderer is None:
            raise ValidationError(f"Unknown email template: {template_name}")
        return renderer(template_data)

    def send(self, to: str, template_name: str, template_data: Dict[str, Any],
             user_id: Optional[str] = None) -> str:
        """Send a templated email and return the SES message id"""
        subject, html, text = self.render(template_name, template_data)

        try:
            response = self.ses_client.send_email(
                Source=f"{self.from_name} <{self.from_email}>",
                Destination={'ToAddresses': [to]},
                Message={
                    'Subject': {'Data': subject},
                    'Body': {
                        'Html': {'Data': html},
                        'Text': {'Data': text},
                    }
                }
            )
        except (BotoCoreError, ClientError) as e:
            self._log_email(user_id, template_name, to, subject, 'failed', None)
            raise UpstreamUnavailable(f"Failed to send email: {str(e)}") from e

        message_id = response.get('MessageId')
        self._log_email(user_id, template_name, to, subject, 'sent', message_id)
        log_info(f"Sent '{template_name}' email to {to} ({message_id})")
        return message_id

    def _log_email(self, user_id, email_type, address, subject, status, message_id):
        """Record the attempt in email_logs; a logging failure never affects the send result"""
        if not user_id:
            return
        try:
            self.store.insert('email_logs', {
                'user_id': user_id,
                'email_type': email_type,
                'email_address': address,
                'subject': subject,
                'status': status,
                'provider_message_id': message_id,
            })
        except Exception as e:
            log_warning(f"Failed to log email for user {user_id}: {str(e)}")


_dispatcher = None


def get_email_dispatcher() -> EmailDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = EmailDispatcher()
    return _dispatcher
