"""Backend Client Facade contract and concrete backend adapters."""
