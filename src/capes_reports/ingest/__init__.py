"""Readers for the CAPES grants export and the currency conversion table."""
