"""Tests for SMTP delivery of account emails."""

from unittest.mock import patch

from envirotrack.models.user import User
from envirotrack.services import mailer


def test_unconfigured_smtp_skips_sending(app):
    with app.app_context(), patch('envirotrack.services.mailer.smtplib.SMTP') as smtp:
        sent, error = mailer.send_email('someone@example.com', 'Hello', 'Body')
    assert sent is False
    assert error == 'SMTP not configured'
    smtp.assert_not_called()


def test_sends_with_tls_and_login(app):
    app.config.update(SMTP_HOST='smtp.test', SMTP_PORT=2525, SMTP_USERNAME='mailer',
                      SMTP_PASSWORD='secret', MAIL_FROM='noreply@envirotrack.test')
    with app.app_context(), patch('envirotrack.services.mailer.smtplib.SMTP') as smtp:
        sent, error = mailer.send_email('someone@example.com', 'Hello', 'Body', '<p>Body</p>')

    assert (sent, error) == (True, '')
    smtp.assert_called_once_with('smtp.test', 2525)
    server = smtp.return_value.__enter__.return_value
    server.starttls.assert_called_once()
    server.login.assert_called_once_with('mailer', 'secret')
    from_addr, recipients, _ = server.sendmail.call_args[0]
    assert from_addr == 'noreply@envirotrack.test'
    assert recipients == ['someone@example.com']


def test_smtp_failure_is_reported(app):
    app.config.update(SMTP_HOST='smtp.test', MAIL_FROM='noreply@envirotrack.test')
    with app.app_context(), patch('envirotrack.services.mailer.smtplib.SMTP', side_effect=OSError('refused')):
        sent, error = mailer.send_email('someone@example.com', 'Hello', 'Body')
    assert sent is False
    assert 'refused' in error


def test_password_link_quotes_email(app, outbox):
    user = User(email='a+b@example.com', first_name='Ann', last_name='Bee')
    with app.app_context():
        mailer.send_password_link(user, 'abc123', 'setup')
    assert outbox[0]['subject'] == 'Set up your EnviroTrack password'
    assert 'http://frontend.test/setup-password?token=abc123&email=a%2Bb%40example.com' in outbox[0]['text']
