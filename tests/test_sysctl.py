"""Tests for sysctl module."""

from unittest.mock import patch

from rctl_exporter.sysctl import racct_enabled, sysctl_int


def test_sysctl_int_returns_none_for_invalid():
    """Invalid sysctl names return None."""
    assert sysctl_int("this.does.not.exist") is None


def test_racct_enabled_unsupported():
    """A missing kern.racct.enable means no RACCT support."""
    with patch("rctl_exporter.sysctl.sysctl_int", return_value=None):
        assert racct_enabled() is None


def test_racct_enabled_values():
    """The tunable maps to a boolean."""
    with patch("rctl_exporter.sysctl.sysctl_int", return_value=1):
        assert racct_enabled() is True
    with patch("rctl_exporter.sysctl.sysctl_int", return_value=0):
        assert racct_enabled() is False
