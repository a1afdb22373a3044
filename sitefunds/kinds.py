"""Record kinds (table names) shared by the repository and the workflows."""

USERS = "users"
ALLOCATIONS = "allocations"
EXPENSES = "expenses"
BILLS = "bills"
CONTRACTS = "contracts"
LEDGER_ENTRIES = "ledger_entries"
ATTENDANCE = "attendance"
