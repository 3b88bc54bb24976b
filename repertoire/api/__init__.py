"""HTTP surface for the repertoire scanner."""
