"""
GrowthKit entry point.
"""
import os
import sys
import traceback

print("[GrowthKit] Starting GrowthKit v0.1.0")

# Default to production for container deployments
config_name = os.getenv('FLASK_ENV', 'production')
print(f"[GrowthKit] Config: {config_name}")
print(f"[GrowthKit] DATABASE_URL: {'set' if os.getenv('DATABASE_URL') else 'NOT SET'}")

try:
    from growthkit import create_app
    app = create_app(config_name)
    print(f"[GrowthKit] App created, routes: {len(list(app.url_map.iter_rules()))}")
except Exception as e:
    print(f"[GrowthKit] FATAL ERROR during app creation: {e}")
    traceback.print_exc()
    sys.exit(1)

if __name__ == '__main__':
    app.run(
        host='0.0.0.0',
        port=int(os.getenv('PORT', 5000)),
        debug=os.getenv('FLASK_ENV') == 'development'
    )
