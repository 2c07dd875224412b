import uvicorn

from api.config import settings
from api.main import create_app

app = create_app()

if __name__ == "__main__":
    uvicorn.run("api.wsgi:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG)
