"""SkillNet backend package.

The FastAPI application lives in `skillnet.main`; business logic is in
`skillnet.services` (including the credential issuer), listing filters in
`skillnet.filters` and persistence in `skillnet.repositories`.
"""
