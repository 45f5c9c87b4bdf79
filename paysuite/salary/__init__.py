"""Salary module — salary component catalog and salary templates."""
