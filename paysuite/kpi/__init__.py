"""KPI module — monthly commission records and KPI period close."""
