from __future__ import annotations

import unittest
from datetime import date, datetime, timedelta, timezone

from armory.errors import ValidationError
from armory.services.input_parsing import (
    MAX_QUANTITY,
    clean_text,
    parse_datetime,
    parse_id,
    parse_optional_id,
    parse_period_end,
    parse_period_start,
    parse_quantity,
)


class ParseQuantityTests(unittest.TestCase):
    def test_accepts_positive_integers(self) -> None:
        self.assertEqual(parse_quantity('12'), 12)
        self.assertEqual(parse_quantity(' 3 '), 3)
        self.assertEqual(parse_quantity(7), 7)

    def test_rejects_missing_non_numeric_and_non_positive(self) -> None:
        for raw in (None, '', '  ', 'abc', '1.5', '0', '-2', 0, -1, True):
            with self.subTest(raw=raw), self.assertRaises(ValidationError):
                parse_quantity(raw)

    def test_rejects_values_beyond_the_column_range(self) -> None:
        self.assertEqual(parse_quantity(str(MAX_QUANTITY)), MAX_QUANTITY)
        for raw in (MAX_QUANTITY + 1, '100000000000000000000'):
            with self.subTest(raw=raw), self.assertRaises(ValidationError):
                parse_quantity(raw)


class ParseIdTests(unittest.TestCase):
    def test_ids(self) -> None:
        self.assertEqual(parse_id('42', field='baseId'), 42)
        self.assertIsNone(parse_optional_id('', field='baseId'))
        self.assertIsNone(parse_optional_id(None, field='baseId'))
        with self.assertRaises(ValidationError):
            parse_id('fort', field='baseId')
        with self.assertRaises(ValidationError):
            parse_id(None, field='baseId')
        for raw in ('0', -3, str(2**63)):
            with self.subTest(raw=raw), self.assertRaises(ValidationError):
                parse_id(raw, field='baseId')


class ParseDateTests(unittest.TestCase):
    def test_calendar_date_is_midnight_utc(self) -> None:
        self.assertEqual(parse_datetime('2024-01-03'), datetime(2024, 1, 3, tzinfo=timezone.utc))
        self.assertEqual(parse_datetime(date(2024, 1, 3)), datetime(2024, 1, 3, tzinfo=timezone.utc))

    def test_iso_datetimes_are_normalised_to_utc(self) -> None:
        self.assertEqual(parse_datetime('2024-01-03T10:15:00Z'), datetime(2024, 1, 3, 10, 15, tzinfo=timezone.utc))
        self.assertEqual(
            parse_datetime('2024-01-03T12:15:00+02:00'),
            datetime(2024, 1, 3, 10, 15, tzinfo=timezone.utc),
        )
        self.assertEqual(parse_datetime(datetime(2024, 1, 3, 8)), datetime(2024, 1, 3, 8, tzinfo=timezone.utc))

    def test_rejects_garbage(self) -> None:
        for raw in (None, '', 'yesterday', '2024-13-45'):
            with self.subTest(raw=raw), self.assertRaises(ValidationError):
                parse_datetime(raw)

    def test_period_bounds(self) -> None:
        self.assertIsNone(parse_period_start(''))
        self.assertIsNone(parse_period_end(None))
        end_of_day = datetime(2024, 1, 4, tzinfo=timezone.utc) - timedelta(microseconds=1)
        self.assertEqual(parse_period_end('2024-01-03'), end_of_day)
        self.assertEqual(parse_period_end(date(2024, 1, 3)), end_of_day)
        self.assertEqual(
            parse_period_end('2024-01-03T09:00:00+00:00'),
            datetime(2024, 1, 3, 9, tzinfo=timezone.utc),
        )


class CleanTextTests(unittest.TestCase):
    def test_blank_is_none(self) -> None:
        self.assertIsNone(clean_text('   '))
        self.assertIsNone(clean_text(None))
        self.assertEqual(clean_text(' Sgt. Rivera '), 'Sgt. Rivera')


if __name__ == '__main__':
    unittest.main()
