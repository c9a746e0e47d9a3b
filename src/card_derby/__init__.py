"""Card-driven horse race for a party betting game."""
