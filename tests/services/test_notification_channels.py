"""Tests for message channels and recipient directories."""

import smtplib

import pytest

from stock_config.schema import NotificationSettings, SmtpSettings
from stock_services.notification.channels import (
    LoggingChannel,
    MessageChannel,
    SmtpChannel,
    build_channel,
)
from stock_services.notification.recipients import StaticRecipientDirectory


class FakeSMTP:
    """Records the conversation; behaviour set per test."""

    instances: list["FakeSMTP"] = []

    def __init__(self, host, port, timeout=None, refuse=False, fail_with=None):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.refuse = refuse
        self.fail_with = fail_with
        self.calls = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.calls.append("quit")
        return False

    def starttls(self):
        self.calls.append("starttls")

    def login(self, username, password):
        self.calls.append(("login", username, password))

    def sendmail(self, sender, recipients, message):
        if self.fail_with is not None:
            raise self.fail_with
        self.calls.append(("sendmail", sender, tuple(recipients), message))
        if self.refuse:
            return {recipients[0]: (550, b"mailbox unavailable")}
        return {}


@pytest.fixture(autouse=True)
def _reset_fake_smtp():
    FakeSMTP.instances = []
    yield
    FakeSMTP.instances = []


def _factory(**behaviour):
    def _make(host, port, timeout=None):
        return FakeSMTP(host, port, timeout=timeout, **behaviour)

    return _make


class TestSmtpChannel:
    def test_sends_with_tls_and_login(self):
        settings = SmtpSettings(
            host="mail.shop.test",
            port=2525,
            username="returns",
            password="secret",
            sender="returns@shop.test",
        )

        ok = SmtpChannel(settings, smtp_factory=_factory()).send(
            "manager@shop.test", "Stock return", "4 unit(s) of Milk"
        )

        assert ok is True
        server = FakeSMTP.instances[0]
        assert (server.host, server.port, server.timeout) == ("mail.shop.test", 2525, 10.0)
        assert server.calls[0] == "starttls"
        assert server.calls[1] == ("login", "returns", "secret")
        _, sender, recipients, message = server.calls[2]
        assert sender == "returns@shop.test"
        assert recipients == ("manager@shop.test",)
        assert "Subject: Stock return" in message

    def test_plain_connection_without_credentials(self):
        settings = SmtpSettings(use_tls=False)

        SmtpChannel(settings, smtp_factory=_factory()).send("a@shop.test", "s", "b")

        assert [c for c in FakeSMTP.instances[0].calls if isinstance(c, str)] == ["quit"]

    def test_refused_recipient_is_false(self, captured_logs):
        ok = SmtpChannel(SmtpSettings(), smtp_factory=_factory(refuse=True)).send(
            "gone@shop.test", "s", "b"
        )

        assert ok is False
        assert any(r["message"] == "smtp_recipient_refused" for r in captured_logs())

    @pytest.mark.parametrize(
        "error",
        [smtplib.SMTPServerDisconnected("dropped"), ConnectionRefusedError("refused")],
    )
    def test_transport_errors_are_false(self, error, captured_logs):
        ok = SmtpChannel(SmtpSettings(), smtp_factory=_factory(fail_with=error)).send(
            "a@shop.test", "s", "b"
        )

        assert ok is False
        failed = [r for r in captured_logs() if r["message"] == "smtp_send_failed"]
        assert failed[0]["recipient"] == "a@shop.test"


class TestBuildChannel:
    def test_log_channel_by_default(self):
        channel = build_channel(NotificationSettings())

        assert isinstance(channel, LoggingChannel)
        assert isinstance(channel, MessageChannel)

    def test_smtp_channel(self):
        channel = build_channel(NotificationSettings(channel="smtp"))

        assert channel.name == "smtp"


class TestStaticRecipientDirectory:
    def test_blank_and_duplicate_entries_dropped(self):
        directory = StaticRecipientDirectory(
            ["manager@shop.test", " ", "owner@shop.test", "manager@shop.test"]
        )

        assert directory.recipients_for(None) == ("manager@shop.test", "owner@shop.test")
