"""
Compyy Backend — API Routes Package
=====================================

Route Inventory:
    - auth.py:       /api/auth       register, login, sessions, passwords, email confirmation
    - users.py:      /api/users      profiles, stats, referral data
    - games.py:      /api/games      CRUD, public listing, saved, ratings, board editor
    - templates.py:  /api/templates  marketplace, library, apply
    - play.py:       /api/play       live play sessions
    - media.py:      /api/media      uploads; /api/files serves them
    - community.py:  /api            referrals, newsletter, tags, feedback, support, stats
    - health.py:     /health

Routes stay thin: extract input, call a service, shape the response.
"""
