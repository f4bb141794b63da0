import logging
from fastapi import FastAPI
from datetime import datetime
from app.core.config import settings
from app.routes import system
from app.database.connection import Base, engine
from app.routes.pricing.calculate_price import router as calculate_price_router
from app.routes.cart import router as cart_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

Base.metadata.create_all(bind=engine)

app = FastAPI(title="Discount Rule Engine")


app.include_router(calculate_price_router)
app.include_router(cart_router)
app.include_router(system.router)

@app.on_event("startup")
async def startup_event():
    app.state.start_time = datetime.utcnow()
