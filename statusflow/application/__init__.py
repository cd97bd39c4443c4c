"""Application layer: services, validators and factories."""
