import json
import tempfile
import unittest
from datetime import date, datetime
from pathlib import Path
from unittest.mock import MagicMock

import requests

from lawyerzen.client.api import ApiClient
from lawyerzen.client.local_storage import LocalStorage
from lawyerzen.client.preferences import STORAGE_KEY, PreferencesController, PreferencesState
from lawyerzen.client.theme import ThemeController


class LocalStorageTests(unittest.TestCase):
    def test_values_persist_across_instances(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "state.json"
            LocalStorage(path).set_item("legal-pro-theme", "dark")
            self.assertEqual(LocalStorage(path).get_item("legal-pro-theme"), "dark")

    def test_remove_item(self):
        storage = LocalStorage(None)
        storage.set_item("k", "v")
        storage.remove_item("k")
        storage.remove_item("k")
        self.assertIsNone(storage.get_item("k"))

    def test_unreadable_file_starts_empty(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "state.json"
            path.write_text("{not json", encoding="utf-8")
            self.assertIsNone(LocalStorage(path).get_item("anything"))


class ApiClientTests(unittest.TestCase):
    def test_update_preferences_patches_settings_endpoint(self):
        session = MagicMock()
        session.request.return_value.json.return_value = {"user": {"id": "u1"}}
        api = ApiClient("http://localhost:5000/", session=session)

        self.assertEqual(api.update_preferences({"theme": "dark"}), {"id": "u1"})
        method, url = session.request.call_args.args
        self.assertEqual(method, "PATCH")
        self.assertEqual(url, "http://localhost:5000/api/auth/settings/preferences")
        self.assertEqual(session.request.call_args.kwargs["json"], {"theme": "dark"})


class ThemeControllerTests(unittest.TestCase):
    def setUp(self):
        self.storage = LocalStorage(None)
        self.scheme = "dark"
        self.api = MagicMock()

    def controller(self, **kwargs):
        return ThemeController(
            self.storage, self.api, detect_color_scheme=lambda: self.scheme, **kwargs
        )

    def test_defaults_to_system_and_resolves_it(self):
        theme = self.controller()
        self.assertEqual(theme.theme, "system")
        self.assertEqual(theme.actual_theme, "dark")

    def test_stored_mode_wins_and_invalid_values_are_ignored(self):
        self.storage.set_item("legal-pro-theme", "light")
        self.assertEqual(self.controller().theme, "light")
        self.storage.set_item("legal-pro-theme", "sepia")
        self.assertEqual(self.controller().theme, "system")

    def test_actual_theme_follows_every_mode_change(self):
        theme = self.controller()
        seen = []
        theme.subscribe(seen.append)

        theme.set_theme("light")
        self.scheme = "light"
        theme.set_theme("system")
        theme.set_theme("dark")
        self.assertEqual(seen, ["light", "light", "dark"])
        self.assertEqual(self.storage.get_item("legal-pro-theme"), "dark")
        self.api.update_me.assert_not_called()

    def test_system_mode_tracks_os_scheme_on_refresh(self):
        theme = self.controller()
        self.scheme = "light"
        self.assertEqual(theme.refresh(), "light")

    def test_set_theme_and_save_swallows_backend_errors(self):
        self.api.update_me.side_effect = requests.ConnectionError("offline")
        theme = self.controller()
        with self.assertLogs("lawyerzen.client.theme", level="WARNING"):
            theme.set_theme_and_save("light")
        self.assertEqual(theme.theme, "light")
        self.assertEqual(theme.actual_theme, "light")

    def test_trigger_toggles_resolved_theme(self):
        theme = self.controller()
        self.assertEqual(theme.trigger_theme_change(), "light")
        self.assertEqual(theme.trigger_theme_change(), "dark")
        self.api.update_me.assert_called_with({"preferences": {"theme": "dark"}})

    def test_rejects_unknown_mode(self):
        with self.assertRaises(ValueError):
            self.controller().set_theme("sepia")


class PreferencesControllerTests(unittest.TestCase):
    def setUp(self):
        self.storage = LocalStorage(None)
        self.api = MagicMock()
        self.theme = ThemeController(self.storage, detect_color_scheme=lambda: "light")
        self.prefs = PreferencesController(self.storage, self.api, self.theme)

    def test_state_transitions(self):
        self.assertEqual(self.prefs.state, PreferencesState.UNINITIALIZED)
        self.prefs.load_from_user({"preferences": {"theme": "dark", "currency": "USD"}})
        self.assertEqual(self.prefs.state, PreferencesState.LOADED)
        self.assertEqual(self.theme.theme, "dark")
        self.assertEqual(self.prefs.preferences["timezone"], "Asia/Kolkata")

        self.prefs.update(dateFormat="YYYY-MM-DD")
        self.assertEqual(self.prefs.state, PreferencesState.MUTATED)
        self.api.update_preferences.assert_not_called()

        self.prefs.save()
        self.assertEqual(self.prefs.state, PreferencesState.SAVED)
        self.api.update_preferences.assert_called_once()
        stored = json.loads(self.storage.get_item(STORAGE_KEY))
        self.assertEqual(stored["dateFormat"], "YYYY-MM-DD")

    def test_save_is_optimistic(self):
        self.api.update_preferences.side_effect = requests.HTTPError("500")
        with self.assertLogs("lawyerzen.client.preferences", level="WARNING"):
            saved = self.prefs.save(theme="light", currency="GBP")
        self.assertEqual(saved["currency"], "GBP")
        self.assertEqual(self.prefs.state, PreferencesState.SAVED)
        self.assertEqual(self.theme.theme, "light")
        self.assertIn("GBP", self.storage.get_item(STORAGE_KEY))

    def test_load_uses_profile_fallbacks_and_keeps_local_theme_for_system(self):
        self.theme.set_theme("dark")
        self.prefs.load_from_user(
            {"preferences": {"theme": "system"}, "profile": {"timezone": "Europe/London", "currency": "GBP"}}
        )
        self.assertEqual(self.prefs.preferences["timezone"], "Europe/London")
        self.assertEqual(self.prefs.currency_symbol(), "£")
        self.assertEqual(self.theme.theme, "dark")

    def test_load_without_user_keeps_state(self):
        self.prefs.load_from_user(None)
        self.assertEqual(self.prefs.state, PreferencesState.UNINITIALIZED)

    def test_unknown_preference_rejected(self):
        with self.assertRaises(ValueError):
            self.prefs.update(fontSize=14)

    def test_invalid_values_are_rejected_before_any_change(self):
        before = dict(self.prefs.preferences)
        with self.assertRaises(ValueError):
            self.prefs.save(theme="purple", currency="USD")
        with self.assertRaises(ValueError):
            self.prefs.update(dateFormat="DD.MM.YY")

        self.assertEqual(self.prefs.preferences, before)
        self.assertEqual(self.prefs.state, PreferencesState.UNINITIALIZED)
        self.assertIsNone(self.storage.get_item(STORAGE_KEY))
        self.assertEqual(self.theme.theme, "system")
        self.api.update_preferences.assert_not_called()

    def test_invalid_cached_values_are_ignored(self):
        self.storage.set_item(
            STORAGE_KEY, json.dumps({"theme": "purple", "dateFormat": "YYYY-MM-DD", "fontSize": 14})
        )
        reloaded = PreferencesController(self.storage, self.api, self.theme)
        self.assertEqual(reloaded.preferences["theme"], "system")
        self.assertEqual(reloaded.preferences["dateFormat"], "YYYY-MM-DD")
        self.assertNotIn("fontSize", reloaded.preferences)

    def test_format_date(self):
        when = date(2025, 1, 14)
        self.assertEqual(self.prefs.format_date(when), "14/01/2025")
        self.prefs.update(dateFormat="MM/DD/YYYY")
        self.assertEqual(self.prefs.format_date(datetime(2025, 1, 14, 18, 0)), "01/14/2025")
        self.prefs.update(dateFormat="YYYY-MM-DD")
        self.assertEqual(self.prefs.format_date("2025-01-14T10:00:00Z"), "2025-01-14")
        self.assertEqual(self.prefs.format_date("next week"), "")
        self.assertEqual(self.prefs.format_date(None), "")

    def test_currency_symbols(self):
        self.assertEqual(self.prefs.currency_symbol(), "₹")
        self.assertEqual(self.prefs.currency_symbol("USD"), "$")
        self.assertEqual(self.prefs.currency_symbol("EUR"), "€")
        self.assertEqual(self.prefs.currency_symbol("GBP"), "£")
        self.assertEqual(self.prefs.currency_symbol("AED"), "د.إ")
        self.assertEqual(self.prefs.currency_symbol("JPY"), "₹")


if __name__ == "__main__":
    unittest.main()
