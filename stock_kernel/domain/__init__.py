"""Pure domain layer: values, workflows, records, reconciliation."""
