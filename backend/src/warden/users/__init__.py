"""Identity administration: creation, listing, deactivation and reactivation"""
