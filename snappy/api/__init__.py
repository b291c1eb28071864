import importlib
import pkgutil


def include_routers(app, package_name, package_path):
    # 패키지 내에서 router를 정의한 모듈만 등록
    for _, module_name, _ in pkgutil.iter_modules(package_path):
        module = importlib.import_module(f"snappy.{package_name}.{module_name}")
        if hasattr(module, "router"):
            app.include_router(module.router)
