"""Services for the workflow kernel (write side and the engine facade)."""
