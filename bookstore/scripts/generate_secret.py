"""
Print a random signing key for SECRET_KEY.

Run: python -m bookstore.scripts.generate_secret
"""
import secrets


def generate_secret(nbytes: int = 64) -> str:
    return secrets.token_hex(nbytes)


if __name__ == "__main__":
    print(f"SECRET_KEY={generate_secret()}")
