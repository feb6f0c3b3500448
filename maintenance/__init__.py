"""maintenance/ -- Seeding and bulk reset of the admin database.

Layer rule: maintenance/ may import from auth/, audit/ and core/. It does NOT
import from api/ or actions/. The cron route and the CLI call into it.
"""
