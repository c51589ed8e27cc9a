import secrets
import os
from cryptography.fernet import Fernet

# Generate secrets
jwt_secret = secrets.token_urlsafe(32)
fernet_key = Fernet.generate_key().decode()
cron_secret = secrets.token_urlsafe(32)

print(f"Generated JWT_SECRET: {jwt_secret}")
print(f"Generated TOKEN_ENCRYPTION_KEY: {fernet_key}")
print(f"Generated CRON_SECRET: {cron_secret}")

template_path = ".env.template"
env_path = ".env"

generated = {
    "JWT_SECRET": jwt_secret,
    "TOKEN_ENCRYPTION_KEY": fernet_key,
    "CRON_SECRET": cron_secret,
}

if os.path.exists(template_path):
    with open(template_path, "r") as f:
        lines = f.read().splitlines()

    new_lines = []
    for line in lines:
        name = line.split("=", 1)[0]
        if name in generated:
            new_lines.append(f"{name}={generated[name]}")
        else:
            new_lines.append(line)

    with open(env_path, "w") as f:
        f.write("\n".join(new_lines) + "\n")

    print(f"Successfully wrote to {env_path}")

else:
    print(f"Error: {template_path} not found. Please ensure it exists.")
