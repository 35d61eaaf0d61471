import os

# armory.db builds its engine at import time; point it at a throwaway database.
os.environ['DATABASE_URL'] = 'sqlite+pysqlite:///:memory:'
