import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from hdrcal.routers.calibration import router as calibration_router


def create_app() -> FastAPI:
	logging.basicConfig(
		level=os.environ.get("HDRCAL_LOG_LEVEL", "INFO").upper(),
		format="%(asctime)s %(levelname)s %(name)s: %(message)s",
	)
	app = FastAPI(title="HDR Calibration API", version="0.1.0")

	# CORS (adjust origins in production)
	app.add_middleware(
		CORSMiddleware,
		allow_origins=["*"],
		allow_credentials=False,
		allow_methods=["*"],
		allow_headers=["*"],
	)

	app.include_router(calibration_router)

	return app


app = create_app()


if __name__ == "__main__":
	# Local dev server: uvicorn hdrcal.main:app --reload
	import uvicorn

	uvicorn.run("hdrcal.main:app", host="0.0.0.0", port=8000, reload=True)
