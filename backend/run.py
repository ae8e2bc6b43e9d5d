"""
Script để chạy FastAPI application.
"""
import uvicorn
import os

if __name__ == "__main__":
    host = os.getenv("HOST", "127.0.0.1")
    port = int(os.getenv("PORT", "8000"))

    # Mặc định là development để có auto-reload
    is_development = os.getenv("ENVIRONMENT", "development").lower() == "development"

    print("\n" + "=" * 60)
    print(f"🚀 Đang khởi động Recommender Manager API ({'Development' if is_development else 'Production'})...")
    print(f"📚 API Docs: http://{host}:{port}/docs")
    print("=" * 60 + "\n")

    uvicorn.run(
        "app.main:app",
        host=host,
        port=port,
        reload=is_development,
        log_level="info"
    )
