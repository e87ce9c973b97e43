"""
Tests for the snapshot cache form and the favorite wire record.
"""

from __future__ import annotations

import unittest

from weatherapp.models import FavoriteEntry, Location, UnitPreference, WeatherSnapshot

from .test_common import make_location, make_record, make_snapshot


class TestUnitPreference(unittest.TestCase):

    def test_parse_falls_back_to_celsius(self):
        self.assertEqual(UnitPreference.parse("fahrenheit"), UnitPreference.FAHRENHEIT)
        self.assertEqual(UnitPreference.parse(None), UnitPreference.CELSIUS)
        self.assertEqual(UnitPreference.parse("kelvin"), UnitPreference.CELSIUS)

    def test_symbol(self):
        self.assertEqual(UnitPreference.CELSIUS.symbol, "°C")
        self.assertEqual(UnitPreference.FAHRENHEIT.symbol, "°F")


class TestLocation(unittest.TestCase):

    def test_from_api_maps_admin1_to_region(self):
        location = Location.from_api(
            {"name": "London", "latitude": 51.5, "longitude": -0.12, "country": "United Kingdom", "admin1": "England"}
        )
        self.assertEqual(location.region, "England")

    def test_from_api_without_region(self):
        location = Location.from_api({"name": "Monaco", "latitude": 43.7, "longitude": 7.4, "country": "Monaco"})
        self.assertIsNone(location.region)


class TestWeatherSnapshot(unittest.TestCase):

    def test_to_dict_does_not_persist_offline_flag(self):
        data = make_snapshot().as_offline().to_dict()
        self.assertNotIn("is_offline", data)
        self.assertIsInstance(data["daily_forecast"], list)

    def test_from_dict_restores_online_snapshot(self):
        snapshot = make_snapshot()
        restored = WeatherSnapshot.from_dict(snapshot.as_offline().to_dict())
        self.assertEqual(restored, snapshot)
        self.assertFalse(restored.is_offline)

    def test_from_dict_missing_field_raises(self):
        data = make_snapshot().to_dict()
        del data["temperature"]
        with self.assertRaises(TypeError):
            WeatherSnapshot.from_dict(data)


class TestFavoriteEntry(unittest.TestCase):

    def test_from_location(self):
        entry = FavoriteEntry.from_location(make_location(), note="home")
        self.assertEqual(entry.city_name, "London")
        self.assertEqual(entry.note, "home")
        self.assertEqual(entry.id, "")

    def test_record_uses_wire_keys(self):
        record = FavoriteEntry.from_record(make_record()).to_record()
        self.assertEqual(record, make_record())

    def test_optional_fields_default(self):
        record = make_record()
        for key in ("note", "latitude", "longitude", "updatedAt"):
            del record[key]
        entry = FavoriteEntry.from_record(record)
        self.assertEqual(entry.note, "")
        self.assertEqual(entry.latitude, 0.0)
        self.assertEqual(entry.updated_at, 0)

    def test_missing_required_field_raises(self):
        for key in ("id", "cityName", "country", "createdAt", "createdBy"):
            record = make_record()
            del record[key]
            with self.subTest(key=key), self.assertRaises(KeyError):
                FavoriteEntry.from_record(record)
