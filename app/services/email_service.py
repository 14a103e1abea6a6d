"""
Email Service - the clinic's notification gateway.

Every send returns True/False. Transport errors are logged here and turned
into False; callers never see an SMTP exception.
"""
import smtplib
import logging
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from flask import current_app
from markupsafe import Markup, escape

logger = logging.getLogger(__name__)


def _mail_settings():
    cfg = current_app.config
    return {
        'server': cfg.get('MAIL_SERVER'),
        'port': cfg.get('MAIL_PORT'),
        'use_tls': cfg.get('MAIL_USE_TLS'),
        'use_ssl': cfg.get('MAIL_USE_SSL'),
        'username': cfg.get('MAIL_USERNAME'),
        'password': cfg.get('MAIL_PASSWORD'),
        'sender': cfg.get('MAIL_DEFAULT_SENDER'),
        'timeout': cfg.get('MAIL_TIMEOUT', 15),
    }


def send_email(to_email, subject, body_text, body_html=None):
    """
    Generic email sending function

    Args:
        to_email: Recipient email
        subject: Email subject
        body_text: Plain text body
        body_html: HTML body (optional)

    Returns:
        bool: True if sent successfully
    """
    try:
        settings = _mail_settings()

        if not settings['username'] or not settings['password']:
            logger.warning("Email not configured. Skipping '%s' to %s", subject, to_email)
            return False

        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = settings['sender']
        msg['To'] = to_email

        msg.attach(MIMEText(body_text, 'plain', 'utf-8'))
        if body_html:
            msg.attach(MIMEText(body_html, 'html', 'utf-8'))

        # Timeout applies to connect and to every SMTP command
        smtp_class = smtplib.SMTP_SSL if settings['use_ssl'] else smtplib.SMTP
        with smtp_class(settings['server'], settings['port'], timeout=settings['timeout']) as server:
            if settings['use_tls'] and not settings['use_ssl']:
                server.starttls()
            server.login(settings['username'], settings['password'])
            server.sendmail(settings['sender'], to_email, msg.as_string())

        logger.info(f"Email sent to {to_email}: {subject}")
        return True

    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False


def _clinic():
    cfg = current_app.config
    return cfg.get('CLINIC_NAME', 'Clinic'), cfg.get('CLINIC_CONTACT_PHONE'), cfg.get('CLINIC_CONTACT_EMAIL')


def _appointment_lines(appointment):
    return (
        f"Appointment #: {appointment.id}\n"
        f"Date: {appointment.appointment_date.isoformat()}\n"
        f"Time: {appointment.appointment_time.strftime('%H:%M')}\n"
        f"Department: {appointment.department.display_name}\n"
    )


def _html(title, greeting, paragraphs, appointment=None):
    """Plain str arguments are escaped; pass Markup for trusted fragments"""
    name, phone, contact_email = _clinic()
    rows = ''
    if appointment is not None:
        rows = (
            '<table>'
            f'<tr><td>Appointment #</td><td><strong>{appointment.id}</strong></td></tr>'
            f'<tr><td>Date</td><td><strong>{appointment.appointment_date.isoformat()}</strong></td></tr>'
            f'<tr><td>Time</td><td><strong>{appointment.appointment_time.strftime("%H:%M")}</strong></td></tr>'
            f'<tr><td>Department</td><td><strong>{appointment.department.display_name}</strong></td></tr>'
            '</table>'
        )
    body = ''.join(f'<p>{escape(p)}</p>' for p in paragraphs)
    return f"""
<!DOCTYPE html>
<html>
<head>
    <style>
        body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
        .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
        .header {{ background: #4a90a4; color: white; padding: 20px; text-align: center; border-radius: 5px 5px 0 0; }}
        .content {{ background: #f9f9f9; padding: 30px; border: 1px solid #ddd; }}
        .footer {{ text-align: center; padding: 20px; color: #666; font-size: 12px; }}
    </style>
</head>
<body>
    <div class="container">
        <div class="header"><h1>{escape(title)}</h1></div>
        <div class="content">
            <h2>{escape(greeting)}</h2>
            {body}
            {rows}
        </div>
        <div class="footer"><p>{escape(name)} - {escape(phone)} - {escape(contact_email)}</p></div>
    </div>
</body>
</html>
"""


def send_appointment_confirmation(appointment):
    """Booking received; sent on creation and retried by the confirmation sweep"""
    name, phone, _ = _clinic()
    subject = f'Appointment booking received - {name}'
    text = (
        f"Hello {appointment.full_name},\n\n"
        f"We have received your appointment request.\n\n"
        f"{_appointment_lines(appointment)}\n"
        f"Our staff will confirm it shortly. Questions: {phone}\n\n"
        f"Best regards,\n{name}"
    )
    html = _html(
        'Booking received',
        f'Hello {appointment.full_name},',
        ['We have received your appointment request. Our staff will confirm it shortly.'],
        appointment,
    )
    return send_email(appointment.email, subject, text, html)


def send_appointment_reminder(appointment):
    name, phone, _ = _clinic()
    subject = f'Reminder: your appointment tomorrow - {name}'
    text = (
        f"Hello {appointment.full_name},\n\n"
        f"This is a reminder of your appointment tomorrow.\n\n"
        f"{_appointment_lines(appointment)}\n"
        f"Please arrive 15 minutes early. To reschedule call {phone}.\n\n"
        f"Best regards,\n{name}"
    )
    html = _html(
        'Appointment reminder',
        f'Hello {appointment.full_name},',
        ['This is a reminder of your appointment tomorrow.', 'Please arrive 15 minutes early.'],
        appointment,
    )
    return send_email(appointment.email, subject, text, html)


def send_appointment_cancellation(appointment, reason):
    name, phone, _ = _clinic()
    subject = f'Appointment cancelled - {name}'
    text = (
        f"Hello {appointment.full_name},\n\n"
        f"Your appointment has been cancelled.\n\n"
        f"{_appointment_lines(appointment)}"
        f"Reason: {reason}\n\n"
        f"To book again call {phone}.\n\n"
        f"Best regards,\n{name}"
    )
    html = _html(
        'Appointment cancelled',
        f'Hello {appointment.full_name},',
        ['Your appointment has been cancelled.', f'Reason: {reason}'],
        appointment,
    )
    return send_email(appointment.email, subject, text, html)


def send_payment_request(appointment):
    name, phone, _ = _clinic()
    amount = appointment.payment_amount
    subject = f'Payment request for appointment #{appointment.id} - {name}'
    text = (
        f"Hello {appointment.full_name},\n\n"
        f"Please complete the payment of {amount} for your appointment.\n\n"
        f"{_appointment_lines(appointment)}\n"
        f"Questions: {phone}\n\n"
        f"Best regards,\n{name}"
    )
    html = _html(
        'Payment request',
        f'Hello {appointment.full_name},',
        [Markup('Please complete the payment of <strong>{}</strong> for your appointment.').format(amount)],
        appointment,
    )
    return send_email(appointment.email, subject, text, html)


class EmailNotificationGateway:
    """
    Notification gateway backed by SMTP. Registered on the app as
    app.extensions['notification_gateway']; tests swap in a fake.
    """

    def send_confirmation(self, appointment):
        return send_appointment_confirmation(appointment)

    def send_reminder(self, appointment):
        return send_appointment_reminder(appointment)

    def send_cancellation(self, appointment, reason):
        return send_appointment_cancellation(appointment, reason)

    def send_payment_request(self, appointment):
        return send_payment_request(appointment)

    def send_simple(self, to, subject, body):
        return send_email(to, subject, body)


def get_notification_gateway():
    return current_app.extensions['notification_gateway']
