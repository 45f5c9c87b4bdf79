"""paysuite — payroll computation engine and run lifecycle service."""
