# main.py
#
# Run the bridge from a checkout, without installing it:
#     python main.py serve --spec openapi.json --target https://petstore3.swagger.io/api/v3

from openapi_mcp.cli import app

# ------------------------------------------------------------------------------
#  ENTRYPOINT
# ------------------------------------------------------------------------------
if __name__ == "__main__":
    app()
