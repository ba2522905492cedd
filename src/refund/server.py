import logging

import uvicorn

from .api import create_app
from .config import Settings


def main() -> None:
    """Run the API with uvicorn on the configured port."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = Settings()
    app = create_app(settings)
    logging.getLogger(__name__).info("Servidor está rodando na porta %s", settings.port)
    uvicorn.run(app, host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
