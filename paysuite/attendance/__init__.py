"""Attendance module — timesheet entries and monthly attendance close."""
