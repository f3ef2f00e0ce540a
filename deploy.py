import boto3
import json
import os
import shutil
import subprocess
import tomllib
import traceback

from botocore.exceptions import ClientError

# Config
AWS_REGION = "us-east-1"
AWS_ENDPOINT_URL = "http://localhost:4566"
LAMBDA_FUNCTION_NAME = "photo-uploader-api"
ROLE_NAME = "photo-uploader-lambda-role"
API_NAME = "photo-uploader-api"
STAGE = "prod"
ZIP_FILE = "function.zip"
RUNTIME = "python3.11"
HANDLER = "handler.handler"

BUCKET_NAME = "photo-uploader-images"
TABLE_NAME = "photo-uploader-metadata"


def function_environment(extra=None):
    variables = {
        "BUCKET_NAME": BUCKET_NAME,
        "TABLE_NAME": TABLE_NAME,
        "ENV": "local",
        "ENCRYPTION_KEY": os.environ.get("ENCRYPTION_KEY", ""),
        "APP_PASSWORD": os.environ.get("APP_PASSWORD", ""),
        "DEFAULT_FROM_EMAIL": os.environ.get("DEFAULT_FROM_EMAIL", "noreply@example.com"),
        "DEFAULT_TO_EMAIL": os.environ.get("DEFAULT_TO_EMAIL", "photos@example.com"),
    }
    if os.environ.get("CDN_DOMAIN"):
        variables["CDN_DOMAIN"] = os.environ["CDN_DOMAIN"]
    variables.update(extra or {})
    return {"Variables": variables}


def runtime_requirements():
    with open("pyproject.toml", "rb") as f:
        return tomllib.load(f)["project"]["dependencies"]


def create_zip():
    print("Creating deployment package...")
    if os.path.exists("build"):
        shutil.rmtree("build")
    os.makedirs("build")

    shutil.copytree("uploader", "build/uploader")
    shutil.copy("handler.py", "build/handler.py")

    # Linux wheels for the Lambda runtime
    cmd = [
        "pip", "install", *runtime_requirements(),
        "--target", "build",
        "--platform", "manylinux2014_x86_64",
        "--only-binary=:all:",
        "--implementation", "cp",
        "--python-version", "3.11",
        "--abi", "cp311",
        "--upgrade",
    ]
    subprocess.check_call(cmd)

    shutil.make_archive("function", "zip", "build")
    print(f"Created {ZIP_FILE}")


def create_storage(session):
    s3 = session.client("s3", endpoint_url=AWS_ENDPOINT_URL)
    try:
        s3.create_bucket(Bucket=BUCKET_NAME)
        print(f"Bucket {BUCKET_NAME} created.")
    except ClientError as e:
        print(f"Bucket creation skipped: {e}")

    # Browsers PUT straight to the presigned URL
    s3.put_bucket_cors(
        Bucket=BUCKET_NAME,
        CORSConfiguration={"CORSRules": [{
            "AllowedOrigins": ["*"],
            "AllowedMethods": ["GET", "PUT"],
            "AllowedHeaders": ["*"],
        }]},
    )

    dynamodb = session.client("dynamodb", endpoint_url=AWS_ENDPOINT_URL)
    try:
        dynamodb.create_table(
            TableName=TABLE_NAME,
            KeySchema=[{"AttributeName": "imageKey", "KeyType": "HASH"}],
            AttributeDefinitions=[{"AttributeName": "imageKey", "AttributeType": "S"}],
            BillingMode="PAY_PER_REQUEST",
        )
        print(f"Table {TABLE_NAME} created.")
    except ClientError as e:
        print(f"Table creation skipped: {e}")


def deploy():
    session = boto3.Session(aws_access_key_id="test", aws_secret_access_key="test", region_name=AWS_REGION)
    lambda_client = session.client("lambda", endpoint_url=AWS_ENDPOINT_URL)
    iam = session.client("iam", endpoint_url=AWS_ENDPOINT_URL)
    apigateway = session.client("apigateway", endpoint_url=AWS_ENDPOINT_URL)

    create_storage(session)

    try:
        iam.create_role(
            RoleName=ROLE_NAME,
            AssumeRolePolicyDocument=json.dumps({
                "Version": "2012-10-17",
                "Statement": [{
                    "Effect": "Allow",
                    "Principal": {"Service": "lambda.amazonaws.com"},
                    "Action": "sts:AssumeRole",
                }],
            }),
        )
        print(f"Role {ROLE_NAME} created.")
    except ClientError as e:
        print(f"Role creation skipped (might exist): {e}")

    with open(ZIP_FILE, "rb") as f:
        zipped_code = f.read()

    try:
        lambda_client.delete_function(FunctionName=LAMBDA_FUNCTION_NAME)
        print(f"Deleted existing function {LAMBDA_FUNCTION_NAME}")
    except ClientError:
        pass

    lambda_client.create_function(
        FunctionName=LAMBDA_FUNCTION_NAME,
        Runtime=RUNTIME,
        Role=f"arn:aws:iam::000000000000:role/{ROLE_NAME}",
        Handler=HANDLER,
        Code={"ZipFile": zipped_code},
        Environment=function_environment(),
        Timeout=30,
        MemorySize=128,
    )
    print(f"Lambda {LAMBDA_FUNCTION_NAME} created.")

    api_id = None
    for item in apigateway.get_rest_apis().get("items", []):
        if item["name"] == API_NAME:
            api_id = item["id"]
            break
    if not api_id:
        print("Creating REST API...")
        api_id = apigateway.create_rest_api(name=API_NAME)["id"]
    print(f"API ID: {api_id}")

    resources = apigateway.get_resources(restApiId=api_id).get("items", [])
    root_id = next(item["id"] for item in resources if item["path"] == "/")
    proxy_id = next((item["id"] for item in resources if item.get("pathPart") == "{proxy+}"), None)
    if not proxy_id:
        print("Creating Proxy Resource...")
        proxy_id = apigateway.create_resource(restApiId=api_id, parentId=root_id, pathPart="{proxy+}")["id"]

    # ANY covers both POST and the OPTIONS preflight, which the app answers itself
    apigateway.put_method(restApiId=api_id, resourceId=proxy_id, httpMethod="ANY", authorizationType="NONE")

    lambda_arn = f"arn:aws:lambda:{AWS_REGION}:000000000000:function:{LAMBDA_FUNCTION_NAME}"
    apigateway.put_integration(
        restApiId=api_id,
        resourceId=proxy_id,
        httpMethod="ANY",
        type="AWS_PROXY",
        integrationHttpMethod="POST",
        uri=f"arn:aws:apigateway:{AWS_REGION}:lambda:path/2015-03-31/functions/{lambda_arn}/invocations",
    )

    print("Deploying API...")
    apigateway.create_deployment(restApiId=api_id, stageName=STAGE)

    root_path = f"/restapis/{api_id}/{STAGE}/_user_request_"
    lambda_client.update_function_configuration(
        FunctionName=LAMBDA_FUNCTION_NAME,
        Environment=function_environment({"ROOT_PATH": root_path}),
    )

    base_url = f"{AWS_ENDPOINT_URL}{root_path}"
    print("Deployment Complete!")
    print(f"Presign endpoint: {base_url}/presign-url")
    print(f"Email endpoint:   {base_url}/emails")

    with open("api_id.txt", "w") as f:
        f.write(api_id)


if __name__ == "__main__":
    try:
        if not os.path.exists(ZIP_FILE):
            create_zip()
        deploy()
    except Exception:
        traceback.print_exc()
