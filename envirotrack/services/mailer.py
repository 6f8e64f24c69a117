"""Outgoing email over SMTP.

Settings come from the app config (``SMTP_*`` and ``MAIL_FROM``). Without a
host and sender the message is not sent and a warning is logged, so local
environments work without a mail server.
"""
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from urllib.parse import quote

from flask import current_app

from envirotrack.utils.logging_config import get_logger

logger = get_logger('envirotrack.mailer')


def get_smtp_config():
    config = current_app.config
    return {
        'host': config.get('SMTP_HOST') or '',
        'port': int(config.get('SMTP_PORT') or 587),
        'use_tls': bool(config.get('SMTP_USE_TLS', True)),
        'username': config.get('SMTP_USERNAME') or '',
        'password': config.get('SMTP_PASSWORD') or '',
        'from_email': config.get('MAIL_FROM') or '',
    }


def is_smtp_configured():
    config = get_smtp_config()
    return bool(config['host'] and config['from_email'])


def send_email(to_email, subject, text_body, html_body=None):
    """Send a message; returns ``(sent, error_message)``"""
    config = get_smtp_config()
    if not is_smtp_configured():
        logger.warning("SMTP not configured, email '%s' to %s was not sent", subject, to_email)
        return False, 'SMTP not configured'

    msg = MIMEMultipart('alternative')
    msg['Subject'] = subject
    msg['From'] = config['from_email']
    msg['To'] = to_email
    msg.attach(MIMEText(text_body, 'plain'))
    if html_body:
        msg.attach(MIMEText(html_body, 'html'))

    try:
        with smtplib.SMTP(config['host'], config['port']) as server:
            if config['use_tls']:
                server.starttls(context=ssl.create_default_context())
            if config['username'] and config['password']:
                server.login(config['username'], config['password'])
            server.sendmail(config['from_email'], [to_email], msg.as_string())
    except (smtplib.SMTPException, OSError) as e:
        logger.error('Failed to send email to %s: %s', to_email, e)
        return False, str(e)

    logger.info("Email '%s' sent to %s", subject, to_email)
    return True, ''


def send_password_link(user, token, kind='reset'):
    """Mail a reset or first-time setup link for ``user``"""
    path = 'reset-password' if kind == 'reset' else 'setup-password'
    link = f"{current_app.config['FRONTEND_URL'].rstrip('/')}/{path}?token={token}&email={quote(user.email)}"
    if kind == 'reset':
        subject = 'EnviroTrack password reset'
        intro = 'A password reset was requested for your EnviroTrack account.'
    else:
        subject = 'Set up your EnviroTrack password'
        intro = 'An EnviroTrack account has been created for you.'
    text = (
        f"Hi {user.first_name},\n\n"
        f"{intro} Use the link below to choose a password:\n\n"
        f"{link}\n\n"
        "This link expires in 1 hour. If you did not expect this email you can ignore it.\n"
    )
    html = (
        f'<p>Hi {user.first_name},</p>'
        f'<p>{intro} Use the link below to choose a password:</p>'
        f'<p><a href="{link}">{link}</a></p>'
        '<p>This link expires in 1 hour. If you did not expect this email you can ignore it.</p>'
    )
    return send_email(user.email, subject, text, html)
