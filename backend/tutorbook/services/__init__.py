"""Service layer. Services own transactions and raise domain exceptions."""
