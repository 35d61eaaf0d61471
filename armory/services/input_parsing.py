from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

from armory.errors import ValidationError

# Largest quantity a single purchase, transfer or assignment may carry (32-bit column).
MAX_QUANTITY = 2**31 - 1
MAX_ID = 2**63 - 1


def parse_quantity(raw: int | str | None, *, field: str = 'quantity') -> int:
    if raw is None or (isinstance(raw, str) and raw.strip() == ''):
        raise ValidationError(f'{field.capitalize()} is required')
    if isinstance(raw, bool):
        raise ValidationError(f'Invalid {field}')
    if isinstance(raw, int):
        qty = raw
    else:
        try:
            qty = int(str(raw).strip())
        except ValueError as exc:
            raise ValidationError(f'Invalid {field}: {raw!r}') from exc
    if qty <= 0:
        raise ValidationError(f'{field.capitalize()} must be greater than zero')
    if qty > MAX_QUANTITY:
        raise ValidationError(f'{field.capitalize()} must not exceed {MAX_QUANTITY}')
    return qty


def parse_id(raw: int | str | None, *, field: str) -> int:
    if raw is None or (isinstance(raw, str) and raw.strip() == ''):
        raise ValidationError(f'{field} is required')
    if isinstance(raw, int) and not isinstance(raw, bool):
        value = raw
    else:
        try:
            value = int(str(raw).strip())
        except ValueError as exc:
            raise ValidationError(f'Invalid {field}: {raw!r}') from exc
    if not 0 < value <= MAX_ID:
        raise ValidationError(f'Invalid {field}: {raw!r}')
    return value


def parse_optional_id(raw: int | str | None, *, field: str) -> int | None:
    if raw is None or (isinstance(raw, str) and raw.strip() == ''):
        return None
    return parse_id(raw, field=field)


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_raw(raw: str) -> tuple[datetime, bool]:
    """Returns the parsed value and whether the input carried only a calendar date."""
    text = raw.strip()
    if len(text) == 10:
        try:
            return datetime.combine(date.fromisoformat(text), time.min), True
        except ValueError:
            pass
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        return datetime.fromisoformat(text), False
    except ValueError as exc:
        raise ValidationError(f'Invalid date: {raw!r}') from exc


def parse_datetime(raw: datetime | date | str | None, *, field: str = 'date') -> datetime:
    if raw is None or (isinstance(raw, str) and raw.strip() == ''):
        raise ValidationError(f'{field.capitalize()} is required')
    if isinstance(raw, datetime):
        return _to_utc(raw)
    if isinstance(raw, date):
        return datetime.combine(raw, time.min, tzinfo=timezone.utc)
    value, _ = _parse_raw(str(raw))
    return _to_utc(value)


def parse_period_start(raw: datetime | date | str | None) -> datetime | None:
    if raw is None or (isinstance(raw, str) and raw.strip() == ''):
        return None
    return parse_datetime(raw, field='from date')


def parse_period_end(raw: datetime | date | str | None) -> datetime | None:
    """Inclusive upper bound; a bare calendar date covers that whole day."""
    if raw is None or (isinstance(raw, str) and raw.strip() == ''):
        return None
    if isinstance(raw, datetime):
        return _to_utc(raw)
    if isinstance(raw, date):
        return datetime.combine(raw + timedelta(days=1), time.min, tzinfo=timezone.utc) - timedelta(microseconds=1)
    value, date_only = _parse_raw(str(raw))
    if date_only:
        value = value + timedelta(days=1) - timedelta(microseconds=1)
    return _to_utc(value)


def clean_text(raw: str | None) -> str | None:
    if raw is None:
        return None
    text = str(raw).strip()
    return text or None
