"""ICSUntis: WebUntis timetable as iCalendar feed."""
