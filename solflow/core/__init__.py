"""Core analysis layers: program model, CFG, SSA, resolution and data flow."""
