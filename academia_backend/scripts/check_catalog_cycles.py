"""
Check the stored catalog for circular prerequisite chains.
Prints the offending path and exits non-zero if one is found.
"""
import sys

from app.core.database import SessionLocal
from app.services.graph import validate_prerequisite_chain
from app.services.prerequisites import catalog_edges

db = SessionLocal()

edges = catalog_edges(db)
print(f"Checking {len(edges)} prerequisite edges")
result = validate_prerequisite_chain(edges)

db.close()

if not result.is_valid:
    print(result.error_message)
    sys.exit(1)
print("No circular prerequisites found.")
