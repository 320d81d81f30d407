"""
Compyy Backend — Services Layer
=================================

Business logic between routes (HTTP) and the database.

Service Inventory:
    - board:              pure Jeopardy board editing and validation
    - play_service:       in-memory play sessions and their state machine
    - auth_service:       accounts, credentials, reset and confirmation tokens
    - user_service:       profiles, search, account deletion, stats
    - game_service:       games, public listing, favorites, ratings
    - template_service:   template marketplace and library
    - tag_service:        usage counts of tags on public content
    - referral_service:   referral links, signups and raffle tickets
    - newsletter_service: subscriptions with optional double opt-in
    - feedback_service:   feedback and support tickets
    - stats_service:      public site counters
    - mail_service:       Resend delivery with retry and circuit breaker
    - file_service:       media validation and storage
"""
