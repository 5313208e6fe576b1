"""Command line interface for running the API server."""
import uvicorn

from config import settings_conf

def main():
    """Run the API server."""
    uvicorn.run(
        "api:app",
        host=settings_conf['api_host'],
        port=settings_conf['api_port'],
        log_level=settings_conf['log_level'].lower()
    )

if __name__ == "__main__":
    main()
