"""File and process helpers shared across devbridge"""
