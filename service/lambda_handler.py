"""AWS lambda handler for the trace explorer FastAPI application"""

from mangum import Mangum
from src.server import app

# Wrap fastAPI app for lambda
# lifespan="off": the shared httpx client is created with the app, not on startup
handler = Mangum(app, lifespan="off")
