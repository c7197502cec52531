from datetime import date

import pytest
from conftest import BOOKING_DAY, SATURDAY, TODAY, actor_for

from app.shared.errors import BadRequestError, DuplicateEntryError, ForbiddenError


@pytest.mark.calendar
class TestBookableDays:
    def test_weekday_in_future_is_bookable(self, calendar):
        calendar.assert_date_bookable(BOOKING_DAY)

    def test_today_is_bookable(self, calendar):
        calendar.assert_date_bookable(TODAY)

    def test_past_date_rejected(self, calendar):
        with pytest.raises(BadRequestError, match="past"):
            calendar.assert_date_bookable(date(2029, 12, 31))

    def test_weekend_rejected(self, calendar):
        with pytest.raises(BadRequestError, match="weekends"):
            calendar.assert_date_bookable(SATURDAY)

    def test_holiday_rejected(self, calendar, admin):
        calendar.create_holiday(actor_for(admin), BOOKING_DAY, "Founders Day")

        with pytest.raises(BadRequestError, match="Founders Day"):
            calendar.assert_date_bookable(BOOKING_DAY)


@pytest.mark.calendar
class TestHolidays:
    def test_only_admin_can_create(self, calendar, agent):
        with pytest.raises(ForbiddenError):
            calendar.create_holiday(actor_for(agent), BOOKING_DAY, "Founders Day")

    def test_duplicate_holiday_rejected(self, calendar, admin):
        calendar.create_holiday(actor_for(admin), BOOKING_DAY, "Founders Day")

        with pytest.raises(DuplicateEntryError):
            calendar.create_holiday(actor_for(admin), BOOKING_DAY, "Another")

    def test_list_by_year(self, calendar, admin):
        calendar.create_holiday(actor_for(admin), date(2030, 12, 25), "Christmas")
        calendar.create_holiday(actor_for(admin), date(2031, 1, 1), "New Year")

        assert [h.name for h in calendar.list_holidays(2030)] == ["Christmas"]
        assert len(calendar.list_holidays()) == 2

    def test_delete_reopens_the_day(self, calendar, admin):
        holiday = calendar.create_holiday(actor_for(admin), BOOKING_DAY, "Founders Day")
        calendar.delete_holiday(actor_for(admin), holiday.id)

        calendar.assert_date_bookable(BOOKING_DAY)

    def test_failed_delete_rolls_back(self, db_session, calendar, admin, monkeypatch):
        holiday = calendar.create_holiday(actor_for(admin), BOOKING_DAY, "Founders Day")

        def failing_commit():
            raise RuntimeError("database went away")

        monkeypatch.setattr(db_session, "commit", failing_commit)
        with pytest.raises(RuntimeError):
            calendar.delete_holiday(actor_for(admin), holiday.id)

        assert [h.name for h in calendar.list_holidays()] == ["Founders Day"]
        with pytest.raises(BadRequestError):
            calendar.assert_date_bookable(BOOKING_DAY)


@pytest.mark.calendar
class TestStaffAvailability:
    def test_staff_marks_own_dates(self, calendar, sales_staff):
        dates = calendar.set_unavailable_dates(
            actor_for(sales_staff), sales_staff.id, [BOOKING_DAY, BOOKING_DAY, date(2030, 1, 8)]
        )

        assert dates == [BOOKING_DAY, date(2030, 1, 8)]
        with pytest.raises(BadRequestError, match="unavailable"):
            calendar.assert_staff_available(sales_staff.id, BOOKING_DAY)

    def test_replacing_dates_clears_old_ones(self, calendar, sales_staff):
        actor = actor_for(sales_staff)
        calendar.set_unavailable_dates(actor, sales_staff.id, [BOOKING_DAY])
        calendar.set_unavailable_dates(actor, sales_staff.id, [date(2030, 1, 9)])

        calendar.assert_staff_available(sales_staff.id, BOOKING_DAY)

    def test_cannot_edit_someone_else(self, calendar, sales_staff, other_sales_staff):
        with pytest.raises(ForbiddenError):
            calendar.set_unavailable_dates(
                actor_for(other_sales_staff), sales_staff.id, [BOOKING_DAY]
            )

    def test_admin_can_edit_anyone(self, calendar, admin, sales_staff):
        calendar.set_unavailable_dates(actor_for(admin), sales_staff.id, [BOOKING_DAY])

        assert calendar.get_unavailable_dates(sales_staff.id) == [BOOKING_DAY]
