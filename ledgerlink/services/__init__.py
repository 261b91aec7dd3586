"""Services package: storage, currency, notifications and local preferences."""
