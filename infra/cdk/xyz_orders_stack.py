from pathlib import Path

from aws_cdk import (
    Stack,
    Duration,
    CfnOutput,
    aws_ec2 as ec2,
    aws_ecs as ecs,
    aws_ecs_patterns as ecs_patterns,
    aws_logs as logs,
    aws_iam as iam,
    aws_sns as sns,
    aws_sqs as sqs,
    aws_sns_subscriptions as subs,
    aws_ecr_assets as ecr_assets,
)
from constructs import Construct

ORDERS_PORT = 8003


class XyzOrdersStack(Stack):
    """Order service on Fargate behind an ALB, publishing ORDER_CREATED to SNS.

    Context:
      database_url         SQLAlchemy URL of the orders database (required)
      product_service_url  base URL the service verifies product ids against
      env                  name suffix, default "dev"
    """

    def __init__(self, scope: Construct, construct_id: str, **kwargs):
        super().__init__(scope, construct_id, **kwargs)

        env_name = self.node.try_get_context("env") or "dev"
        self.name_prefix = f"xyz-{env_name}"

        database_url = self.node.try_get_context("database_url")
        if not database_url:
            raise ValueError("pass -c database_url=postgresql+psycopg2://... for the orders database")
        product_service_url = self.node.try_get_context("product_service_url") or "http://product-service:8002"

        vpc = ec2.Vpc(self, "Vpc", max_azs=2, nat_gateways=1)
        cluster = ecs.Cluster(self, "Cluster", vpc=vpc, cluster_name=f"{self.name_prefix}-orders")

        order_events = self._order_events()

        task_role = iam.Role(
            self,
            "OrdersTaskRole",
            assumed_by=iam.ServicePrincipal("ecs-tasks.amazonaws.com"),
        )
        order_events.grant_publish(task_role)

        task_def = self._task_definition(
            task_role,
            environment={
                "PORT": str(ORDERS_PORT),
                "LOG_LEVEL": "INFO",
                "DATABASE_URL": database_url,
                "PRODUCT_SERVICE_URL": product_service_url,
                "PRODUCT_LOOKUP_TIMEOUT_SECONDS": "5",
                "MESSAGE_BACKEND": "sns",
                "ORDER_EVENTS_TOPIC_ARN": order_events.topic_arn,
                "AWS_REGION": Stack.of(self).region,
            },
        )

        service = ecs_patterns.ApplicationLoadBalancedFargateService(
            self,
            "OrdersService",
            cluster=cluster,
            public_load_balancer=True,
            desired_count=1,
            task_definition=task_def,
            health_check_grace_period=Duration.seconds(30),
        )
        service.target_group.configure_health_check(path="/health")

        CfnOutput(self, "OrdersUrl", value=f"http://{service.load_balancer.load_balancer_dns_name}")
        CfnOutput(self, "OrderEventsTopicArn", value=order_events.topic_arn)

    def _order_events(self) -> sns.Topic:
        topic = sns.Topic(self, "OrderEventsTopic", topic_name=f"{self.name_prefix}-order-events")

        # sample downstream consumer; events that keep failing land in the DLQ
        dlq = sqs.Queue(self, "OrderCreatedDLQ", queue_name=f"{self.name_prefix}-order-created-dlq")
        queue = sqs.Queue(
            self,
            "OrderCreatedQueue",
            queue_name=f"{self.name_prefix}-order-created",
            dead_letter_queue=sqs.DeadLetterQueue(queue=dlq, max_receive_count=5),
        )
        topic.add_subscription(
            subs.SqsSubscription(
                queue,
                raw_message_delivery=True,
                filter_policy={"topic": sns.SubscriptionFilter.string_filter(allowlist=["orders"])},
            )
        )
        CfnOutput(self, "OrderCreatedQueueUrl", value=queue.queue_url)
        return topic

    def _task_definition(self, task_role: iam.Role, environment: dict) -> ecs.FargateTaskDefinition:
        repo_root = Path(__file__).resolve().parents[2]  # infra/cdk -> infra -> repo root
        image = ecr_assets.DockerImageAsset(
            self,
            "OrdersImage",
            directory=str(repo_root),
            file="services/orders_service/Dockerfile",
            exclude=["**/cdk.out", "**/.venv", "**/__pycache__", "**/*.pyc", "**/.pytest_cache", ".git"],
        )

        task_def = ecs.FargateTaskDefinition(
            self,
            "OrdersTaskDef",
            cpu=256,
            memory_limit_mib=512,
            task_role=task_role,
            runtime_platform=ecs.RuntimePlatform(
                cpu_architecture=ecs.CpuArchitecture.ARM64,
                operating_system_family=ecs.OperatingSystemFamily.LINUX,
            ),
        )
        log_group = logs.LogGroup(
            self,
            "OrdersLogGroup",
            log_group_name=f"/ecs/{self.name_prefix}/orders",
            retention=logs.RetentionDays.TWO_WEEKS,
        )
        container = task_def.add_container(
            "OrdersContainer",
            image=ecs.ContainerImage.from_docker_image_asset(image),
            environment=environment,
            logging=ecs.LogDriver.aws_logs(stream_prefix="orders", log_group=log_group),
        )
        container.add_port_mappings(ecs.PortMapping(container_port=ORDERS_PORT))
        CfnOutput(self, "OrdersImageUri", value=image.image_uri)
        return task_def
