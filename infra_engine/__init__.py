"""Infrastructure topology engine: company profiles and organization expansion."""
