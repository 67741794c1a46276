# Overview: Pytest coverage for per-outlet settings.

import pytest

from backoffice.errors import NotFound
from backoffice.services import settings_service
from backoffice.services.settings_service import VARIANCE_THRESHOLD_KEY


class TestOutletSettings:

    def test_default_when_unset(self, db_session, outlet):
        assert settings_service.get_outlet_setting(outlet.id, "receipt.footer", "thanks") == "thanks"
        assert settings_service.variance_threshold_cents(outlet.id) == 1000

    def test_set_then_overwrite(self, db_session, outlet):
        settings_service.set_outlet_setting(outlet.id, VARIANCE_THRESHOLD_KEY, 250)
        assert settings_service.variance_threshold_cents(outlet.id) == 250

        settings_service.set_outlet_setting(outlet.id, VARIANCE_THRESHOLD_KEY, 0)
        assert settings_service.variance_threshold_cents(outlet.id) == 0

    def test_settings_do_not_leak_between_outlets(self, db_session, outlet, second_outlet):
        settings_service.set_outlet_setting(outlet.id, VARIANCE_THRESHOLD_KEY, 5)
        assert settings_service.variance_threshold_cents(second_outlet.id) == 1000

    def test_non_integer_value_falls_back(self, db_session, outlet):
        settings_service.set_outlet_setting(outlet.id, VARIANCE_THRESHOLD_KEY, "lots")
        assert settings_service.variance_threshold_cents(outlet.id) == 1000

    def test_unknown_outlet(self, db_session):
        with pytest.raises(NotFound):
            settings_service.set_outlet_setting(4242, VARIANCE_THRESHOLD_KEY, 5)

    def test_key_required(self, db_session, outlet):
        with pytest.raises(ValueError):
            settings_service.set_outlet_setting(outlet.id, " ", 5)
