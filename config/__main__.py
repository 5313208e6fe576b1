"""Command line interface for testing configuration loading"""
from . import settings_conf, DEFAULTS
from pathlib import Path

SECRET_KEYS = {'jwt_secret'}

def main():
    """Display loaded configuration"""
    print("\nSettings Configuration:")
    print("-" * 50)
    for key, value in settings_conf.items():
        if key in SECRET_KEYS and value:
            value = '********'
        print(f"{key}: {value}")
        
    # Save example configuration file
    examples_dir = Path("examples")
    examples_dir.mkdir(exist_ok=True)
    
    with open(examples_dir / "settings.conf.example", "w") as f:
        f.write("[DEFAULT]\n")
        f.write("# Database connection URL (PostgreSQL or CockroachDB)\n")
        f.write(f"db_url = {DEFAULTS['db_url']}\n")
        f.write(f"db_min_pool_size = {DEFAULTS['db_min_pool_size']}\n")
        f.write(f"db_max_pool_size = {DEFAULTS['db_max_pool_size']}\n")
        f.write("# Token signing secret; leave empty for a random secret per process\n")
        f.write("jwt_secret = \n")
        f.write(f"jwt_algorithm = {DEFAULTS['jwt_algorithm']}\n")
        f.write(f"token_expiry_minutes = {DEFAULTS['token_expiry_minutes']}\n")
        f.write(f"api_host = {DEFAULTS['api_host']}\n")
        f.write(f"api_port = {DEFAULTS['api_port']}\n")
        f.write(f"log_level = {DEFAULTS['log_level']}\n")
    print(f"\nWrote {examples_dir / 'settings.conf.example'}")

if __name__ == "__main__":
    main()
