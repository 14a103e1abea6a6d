from decimal import Decimal

import pytest

from app.services import email_service


@pytest.fixture
def outbox(monkeypatch):
    sent = []

    def _capture(to_email, subject, body, html_body=None):
        sent.append({'to': to_email, 'subject': subject, 'text': body, 'html': html_body})
        return True

    monkeypatch.setattr(email_service, 'send_email', _capture)
    return sent


def test_cancellation_html_escapes_patient_supplied_text(make_appointment, outbox):
    appointment = make_appointment(full_name='<b>Mallory</b>')

    assert email_service.send_appointment_cancellation(appointment, '<script>alert(1)</script>') is True

    (message,) = outbox
    assert '<script>' not in message['html']
    assert '&lt;script&gt;alert(1)&lt;/script&gt;' in message['html']
    assert '<b>Mallory</b>' not in message['html']
    assert '&lt;b&gt;Mallory&lt;/b&gt;' in message['html']
    assert 'Reason: <script>alert(1)</script>' in message['text']


def test_payment_request_keeps_its_own_markup(make_appointment, outbox):
    appointment = make_appointment(full_name='Lan & Co', payment_amount=Decimal('250.00'))

    email_service.send_payment_request(appointment)

    html = outbox[0]['html']
    assert '<strong>250.00</strong>' in html
    assert 'Hello Lan &amp; Co,' in html
