"""Authentication module (username/password + JWT session tokens).

Provides:
    - TokenService: issue and validate HS256 session tokens.
    - IdentityVerifier: session token -> non-banned user record.
    - hash_password / verify_password: argon2id password hashing.
"""
