"""
Monitoring and observability utilities for the inventory dashboard
"""

import logging
import time
import asyncio
import inspect
from typing import Dict, Any, Optional, Callable, List
from datetime import datetime
from functools import wraps
from contextlib import asynccontextmanager

import psutil
from prometheus_client import Counter, Histogram, Gauge, start_http_server
from opentelemetry import trace, metrics
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from config import settings

logger = logging.getLogger(__name__)

# Prometheus metrics
REQUEST_COUNT = Counter(
    'inventory_requests_total',
    'Total number of requests',
    ['method', 'endpoint', 'status_code']
)

REQUEST_DURATION = Histogram(
    'inventory_request_duration_seconds',
    'Request duration in seconds',
    ['method', 'endpoint']
)

AGENT_OPERATION_COUNT = Counter(
    'inventory_agent_operations_total',
    'Total number of agent operations',
    ['agent_type', 'operation', 'status']
)

AGENT_OPERATION_DURATION = Histogram(
    'inventory_agent_operation_duration_seconds',
    'Agent operation duration in seconds',
    ['agent_type', 'operation']
)

PRODUCTS_BY_STATUS = Gauge(
    'inventory_products_by_status',
    'Number of products in each stock status',
    ['status']
)

SYSTEM_CPU_USAGE = Gauge(
    'inventory_system_cpu_usage_percent',
    'System CPU usage percentage'
)

SYSTEM_MEMORY_USAGE = Gauge(
    'inventory_system_memory_usage_percent',
    'System memory usage percentage'
)

GEMINI_REQUESTS = Counter(
    'inventory_gemini_requests_total',
    'Total Gemini requests',
    ['model', 'status']
)

class MetricsCollector:
    """Prometheus metrics collector"""

    def record_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record HTTP request metrics"""
        REQUEST_COUNT.labels(method=method, endpoint=endpoint, status_code=status_code).inc()
        REQUEST_DURATION.labels(method=method, endpoint=endpoint).observe(duration)

    def record_agent_operation(self, agent_type: str, operation: str, status: str, duration: float):
        """Record agent operation metrics"""
        AGENT_OPERATION_COUNT.labels(agent_type=agent_type, operation=operation, status=status).inc()
        AGENT_OPERATION_DURATION.labels(agent_type=agent_type, operation=operation).observe(duration)

    def record_gemini_request(self, model: str, status: str):
        GEMINI_REQUESTS.labels(model=model, status=status).inc()

    def record_status_counts(self, statuses: List[str]):
        """Publish how many products sit in each stock status"""
        for status in ("Healthy", "Low", "Critical"):
            PRODUCTS_BY_STATUS.labels(status=status).set(statuses.count(status))

    def update_system_metrics(self):
        """Update system resource metrics"""
        try:
            SYSTEM_CPU_USAGE.set(psutil.cpu_percent(interval=None))
            SYSTEM_MEMORY_USAGE.set(psutil.virtual_memory().percent)
        except Exception as e:
            logger.error(f"Error collecting system metrics: {e}")

# Global metrics collector instance
metrics_collector = MetricsCollector()

def instrument_app(app):
    """Attach OpenTelemetry tracing to the FastAPI app before it starts"""
    if settings.enable_monitoring:
        FastAPIInstrumentor.instrument_app(app)

def init_monitoring():
    """Initialize monitoring and observability"""
    if not settings.enable_monitoring:
        logger.info("Monitoring disabled")
        return

    # Initialize OpenTelemetry tracing
    tracer_provider = TracerProvider()
    tracer_provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otel_endpoint))
    )
    trace.set_tracer_provider(tracer_provider)

    # Initialize OpenTelemetry metrics
    metric_reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=settings.otel_endpoint),
        export_interval_millis=5000
    )
    metrics.set_meter_provider(MeterProvider(metric_readers=[metric_reader]))

    # Start Prometheus metrics server
    try:
        start_http_server(settings.prometheus_port)
        logger.info(f"Prometheus metrics server started on port {settings.prometheus_port}")
    except Exception as e:
        logger.error(f"Failed to start Prometheus server: {e}")

    asyncio.create_task(collect_system_metrics())

    logger.info("Monitoring initialized successfully")

async def collect_system_metrics():
    """Collect system metrics periodically"""
    while True:
        try:
            metrics_collector.update_system_metrics()
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error in system metrics collection: {e}")
            await asyncio.sleep(60)

def monitor_agent_operation(agent_type: str, operation: str):
    """Decorator to monitor agent operations"""
    def decorator(func):
        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            start_time = time.time()
            status = "success"

            tracer = trace.get_tracer(__name__)
            with tracer.start_as_current_span(f"{agent_type}.{operation}") as span:
                span.set_attribute("agent.type", agent_type)
                span.set_attribute("agent.operation", operation)

                try:
                    result = await func(*args, **kwargs)
                    span.set_attribute("agent.status", "success")
                    return result

                except Exception as e:
                    status = "error"
                    span.set_attribute("agent.status", "error")
                    span.set_attribute("agent.error", str(e))
                    logger.error(f"Agent operation failed: {agent_type}.{operation} - {str(e)}")
                    raise

                finally:
                    duration = time.time() - start_time
                    metrics_collector.record_agent_operation(agent_type, operation, status, duration)

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            start_time = time.time()
            status = "success"

            tracer = trace.get_tracer(__name__)
            with tracer.start_as_current_span(f"{agent_type}.{operation}") as span:
                span.set_attribute("agent.type", agent_type)
                span.set_attribute("agent.operation", operation)

                try:
                    result = func(*args, **kwargs)
                    span.set_attribute("agent.status", "success")
                    return result

                except Exception as e:
                    status = "error"
                    span.set_attribute("agent.status", "error")
                    span.set_attribute("agent.error", str(e))
                    logger.error(f"Agent operation failed: {agent_type}.{operation} - {str(e)}")
                    raise

                finally:
                    duration = time.time() - start_time
                    metrics_collector.record_agent_operation(agent_type, operation, status, duration)

        return async_wrapper if inspect.iscoroutinefunction(func) else sync_wrapper
    return decorator

@asynccontextmanager
async def trace_operation(operation_name: str, attributes: Optional[Dict[str, Any]] = None):
    """Context manager for tracing operations"""
    tracer = trace.get_tracer(__name__)

    with tracer.start_as_current_span(operation_name) as span:
        if attributes:
            for key, value in attributes.items():
                span.set_attribute(key, str(value))

        start_time = time.time()
        try:
            yield span
        except Exception as e:
            span.set_attribute("error", str(e))
            span.set_attribute("error.type", type(e).__name__)
            raise
        finally:
            span.set_attribute("operation.duration", time.time() - start_time)

class HealthChecker:
    """Health check utilities"""

    def __init__(self):
        self.checks = {}

    def register_check(self, name: str, check_func: Callable, timeout: int = 30):
        """Register a health check function"""
        self.checks[name] = {
            'func': check_func,
            'timeout': timeout
        }

    async def run_checks(self) -> Dict[str, Any]:
        """Run all health checks"""
        results = {
            'timestamp': datetime.now().isoformat(),
            'checks': {},
            'overall_status': 'healthy'
        }

        for name, check_config in self.checks.items():
            try:
                result = await asyncio.wait_for(
                    check_config['func'](),
                    timeout=check_config['timeout']
                )

                results['checks'][name] = {
                    'status': 'healthy',
                    'result': result
                }

            except asyncio.TimeoutError:
                results['checks'][name] = {
                    'status': 'timeout',
                    'error': f"Check timed out after {check_config['timeout']}s"
                }
                results['overall_status'] = 'degraded'

            except Exception as e:
                results['checks'][name] = {
                    'status': 'unhealthy',
                    'error': str(e)
                }
                results['overall_status'] = 'unhealthy'

        return results

# Global health checker
health_checker = HealthChecker()

class AlertManager:
    """Manage alerts and notifications"""

    def __init__(self):
        self.alert_handlers = []
        self.alert_history = []

    def add_handler(self, handler: Callable):
        """Add alert handler"""
        self.alert_handlers.append(handler)

    async def send_alert(self, level: str, message: str, details: Optional[Dict[str, Any]] = None):
        """Send alert through all handlers"""
        alert = {
            'timestamp': datetime.now().isoformat(),
            'level': level,
            'message': message,
            'details': details or {}
        }

        self.alert_history.append(alert)

        # Keep only last 1000 alerts
        if len(self.alert_history) > 1000:
            self.alert_history = self.alert_history[-1000:]

        for handler in self.alert_handlers:
            try:
                await handler(alert)
            except Exception as e:
                logger.error(f"Alert handler failed: {e}")

    def get_recent_alerts(self, limit: int = 100) -> list:
        """Get recent alerts"""
        return self.alert_history[-limit:]

# Global alert manager
alert_manager = AlertManager()

async def log_alert_handler(alert: Dict[str, Any]):
    """Log alert to application logs"""
    level = alert['level'].upper()
    message = alert['message']
    details = alert['details']

    log_message = f"ALERT [{level}]: {message}"
    if details:
        log_message += f" - Details: {details}"

    if level == "CRITICAL":
        logger.critical(log_message)
    elif level == "ERROR":
        logger.error(log_message)
    elif level == "WARNING":
        logger.warning(log_message)
    else:
        logger.info(log_message)

alert_manager.add_handler(log_alert_handler)
